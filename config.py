"""Settings for multi-integration-mcp.

Values come from the environment. .env (local override) or the bundled
.env.public is loaded first via python-dotenv.
"""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

CONFIG_DIR = Path.home() / ".multi-integration-mcp"

PROVIDER_FAMILIES = ("github", "google", "notion", "slack")


def load_environment() -> None:
    """Load .env (local override) or .env.public (bundled defaults)."""
    env_file = Path(".env")
    if env_file.exists():
        load_dotenv(env_file)
        return
    public_env = Path(__file__).parent / ".env.public"
    if public_env.exists():
        load_dotenv(public_env)


class Settings:
    """Configuration container."""

    def __init__(self, data: dict = None):
        self.data = data or {}

    @property
    def server_url(self) -> str:
        return (self.data.get("server_url") or "http://localhost:8766").rstrip("/")

    @property
    def cookie_secret(self) -> Optional[str]:
        return self.data.get("cookie_secret")

    @property
    def jwt_secret(self) -> Optional[str]:
        return self.data.get("jwt_secret")

    @property
    def anchor_provider(self) -> str:
        return self.data.get("anchor_provider") or "github"

    @property
    def state_ttl(self) -> int:
        return int(self.data.get("state_ttl") or 600)

    @property
    def credential_ttl(self) -> Optional[int]:
        ttl = int(self.data.get("credential_ttl") or 0)
        return ttl or None

    @property
    def supabase_url(self) -> str:
        return self.data.get("supabase_url", "")

    @property
    def supabase_key(self) -> str:
        return self.data.get("supabase_key", "")

    @property
    def host(self) -> str:
        return self.data.get("host") or "0.0.0.0"

    @property
    def port(self) -> int:
        return int(self.data.get("port") or 8766)

    def provider_client(self, family: str) -> tuple[str, str]:
        """Return (client_id, client_secret) for a provider family."""
        client = self.data.get("providers", {}).get(family, {})
        return client.get("client_id", ""), client.get("client_secret", "")

    def callback_url(self, provider: str) -> str:
        return f"{self.server_url}/callback/{provider}"

    def is_valid(self) -> bool:
        """Check if the settings can run the flow at all."""
        return bool(self.cookie_secret)


def load_settings() -> Settings:
    """Build settings from the environment."""
    load_environment()

    providers = {}
    for family in PROVIDER_FAMILIES:
        prefix = family.upper()
        providers[family] = {
            "client_id": os.getenv(f"{prefix}_CLIENT_ID", ""),
            "client_secret": os.getenv(f"{prefix}_CLIENT_SECRET", ""),
        }

    return Settings({
        "server_url": os.getenv("SERVER_URL", ""),
        "cookie_secret": os.getenv("COOKIE_ENCRYPTION_KEY", ""),
        "jwt_secret": os.getenv("JWT_SECRET", ""),
        "anchor_provider": os.getenv("ANCHOR_PROVIDER", "github"),
        "state_ttl": os.getenv("STATE_TTL_SECONDS", "600"),
        "credential_ttl": os.getenv("CREDENTIAL_TTL_SECONDS", "0"),
        "supabase_url": os.getenv("SUPABASE_URL", ""),
        "supabase_key": os.getenv("SUPABASE_ANON_KEY", ""),
        "host": os.getenv("MCP_HOST", "0.0.0.0"),
        "port": os.getenv("MCP_PORT", "8766"),
        "providers": providers,
    })

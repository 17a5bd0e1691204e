"""Upstream OAuth provider catalog.

Each provider is one ProviderDescriptor row. The flow never branches on a
provider name: endpoints, scopes, token response shape and the
refresh-token parameters all come from the row. Adding a provider means
adding a row.

Anchor providers can name the merged session (they expose a profile
endpoint); feature providers only contribute credentials.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
from urllib.parse import urlencode

from authflow.errors import InvalidRequest

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


class ProviderKind(str, Enum):
    ANCHOR = "anchor"
    FEATURE = "feature"


class TokenResponseFormat(str, Enum):
    JSON = "json"
    FORM = "form"


@dataclass(frozen=True)
class ProfileMapping:
    """Where to find (login, name, email) in an anchor's profile JSON."""

    url: str
    login_field: str
    name_field: str
    email_field: str


@dataclass(frozen=True)
class ProviderDescriptor:
    name: str
    display_name: str
    kind: ProviderKind
    family: str  # selects <FAMILY>_CLIENT_ID / <FAMILY>_CLIENT_SECRET
    authorize_url: str
    token_url: str
    scopes: tuple[str, ...] = ()
    response_format: TokenResponseFormat = TokenResponseFormat.JSON
    # Google only returns a refresh token on a consented offline grant
    offline_consent: bool = False
    basic_auth: bool = False
    extra_authorize_params: dict = field(default_factory=dict)
    profile: Optional[ProfileMapping] = None

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)

    @property
    def is_anchor(self) -> bool:
        return self.kind is ProviderKind.ANCHOR


PROVIDERS: dict[str, ProviderDescriptor] = {
    p.name: p
    for p in (
        ProviderDescriptor(
            name="github",
            display_name="GitHub",
            kind=ProviderKind.ANCHOR,
            family="github",
            authorize_url="https://github.com/login/oauth/authorize",
            token_url="https://github.com/login/oauth/access_token",
            scopes=("read:user", "user:email"),
            response_format=TokenResponseFormat.FORM,
            profile=ProfileMapping(
                url="https://api.github.com/user",
                login_field="login",
                name_field="name",
                email_field="email",
            ),
        ),
        ProviderDescriptor(
            name="google",
            display_name="Google",
            kind=ProviderKind.ANCHOR,
            family="google",
            authorize_url=GOOGLE_AUTHORIZE_URL,
            token_url=GOOGLE_TOKEN_URL,
            scopes=("openid", "email", "profile"),
            offline_consent=True,
            profile=ProfileMapping(
                url="https://openidconnect.googleapis.com/v1/userinfo",
                login_field="email",
                name_field="name",
                email_field="email",
            ),
        ),
        ProviderDescriptor(
            name="gmail",
            display_name="Gmail",
            kind=ProviderKind.FEATURE,
            family="google",
            authorize_url=GOOGLE_AUTHORIZE_URL,
            token_url=GOOGLE_TOKEN_URL,
            scopes=("https://www.googleapis.com/auth/gmail.modify",),
            offline_consent=True,
        ),
        ProviderDescriptor(
            name="calendar",
            display_name="Google Calendar",
            kind=ProviderKind.FEATURE,
            family="google",
            authorize_url=GOOGLE_AUTHORIZE_URL,
            token_url=GOOGLE_TOKEN_URL,
            scopes=(
                "https://www.googleapis.com/auth/calendar",
                "https://www.googleapis.com/auth/calendar.events",
            ),
            offline_consent=True,
        ),
        ProviderDescriptor(
            name="drive",
            display_name="Google Drive",
            kind=ProviderKind.FEATURE,
            family="google",
            authorize_url=GOOGLE_AUTHORIZE_URL,
            token_url=GOOGLE_TOKEN_URL,
            scopes=("https://www.googleapis.com/auth/drive",),
            offline_consent=True,
        ),
        ProviderDescriptor(
            name="notion",
            display_name="Notion",
            kind=ProviderKind.FEATURE,
            family="notion",
            authorize_url="https://api.notion.com/v1/oauth/authorize",
            token_url="https://api.notion.com/v1/oauth/token",
            basic_auth=True,
            extra_authorize_params={"owner": "user"},
        ),
        ProviderDescriptor(
            name="slack",
            display_name="Slack",
            kind=ProviderKind.FEATURE,
            family="slack",
            authorize_url="https://slack.com/oauth/v2/authorize",
            token_url="https://slack.com/api/oauth.v2.access",
            scopes=("channels:read", "channels:history", "chat:write", "users:read"),
        ),
    )
}


def get_provider(name: Optional[str]) -> ProviderDescriptor:
    descriptor = PROVIDERS.get(name or "")
    if descriptor is None:
        raise InvalidRequest(f"Unknown provider: {name}")
    return descriptor


def feature_providers() -> list[ProviderDescriptor]:
    return [p for p in PROVIDERS.values() if p.kind is ProviderKind.FEATURE]


def build_authorize_url(
    descriptor: ProviderDescriptor,
    client_id: str,
    redirect_uri: str,
    state: str,
) -> str:
    """Assemble the provider authorize URL. Always requests response_type=code."""
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": descriptor.scope,
        "state": state,
        "response_type": "code",
    }
    if descriptor.offline_consent:
        params["access_type"] = "offline"
        params["prompt"] = "consent"
    params.update(descriptor.extra_authorize_params)
    return f"{descriptor.authorize_url}?{urlencode(params)}"

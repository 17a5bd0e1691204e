"""MCP Tools for multi-integration-mcp.

Tools see the caller through the access token claims placed on
request.state.token by MCPOAuthMiddleware. Provider credentials are read
from the identity's stored record, falling back to the grant bundle the
token was issued for.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

from fastmcp import FastMCP
from fastmcp.server.dependencies import get_http_request

from authflow import jwt_utils
from authflow.credentials import CredentialStore
from authflow.errors import InvalidRequest
from authflow.issuer import TokenIssuer
from authflow.models import CredentialBundle, ProviderCredential
from authflow.providers import feature_providers, get_provider

logger = logging.getLogger(__name__)

# Create the FastMCP server instance
mcp = FastMCP("multi-integration-mcp")

# These will be set by init_tools()
_server_url: str = ""
_credentials: CredentialStore = None
_issuer: TokenIssuer = None


def init_tools(server_url: str, credentials: CredentialStore, issuer: TokenIssuer):
    global _server_url, _credentials, _issuer
    _server_url = server_url
    _credentials = credentials
    _issuer = issuer


def _bundle_for(claims: dict) -> CredentialBundle:
    stored = _credentials.get(claims.get("sub", "")) if claims.get("sub") else None
    if stored is not None:
        return stored
    return _issuer.load_grant(claims.get("grant", "")) or CredentialBundle()


def connect_url(provider: str, claims: dict) -> str:
    """Direct-flow link that adds provider to the caller's identity."""
    params = {"provider": provider}
    if claims.get("sub"):
        params["connect_token"] = jwt_utils.create_connect_token(
            user_id=claims["sub"],
            grant_id=claims.get("grant", ""),
            issuer=_server_url,
        )
    return f"{_server_url}/authorize?{urlencode(params)}"


def authorization_required(provider: str, claims: dict) -> dict:
    """Payload a tool returns when its provider is not connected yet."""
    descriptor = get_provider(provider)
    return {
        "error": "authorization_required",
        "provider": descriptor.name,
        "message": f"{descriptor.display_name} is not connected to your account.",
        "authorizationUrl": connect_url(descriptor.name, claims),
        "instructions": f"Open the authorization URL to connect {descriptor.display_name}, then retry your request.",
    }


def provider_credential(identity: str, provider: str) -> Optional[ProviderCredential]:
    """Stored credential for (identity, provider), or None if not connected."""
    record = _credentials.get(identity)
    if record is None:
        return None
    return record.providers.get(provider)


def integration_status(claims: dict) -> dict:
    bundle = _bundle_for(claims)
    integrations = []
    for descriptor in feature_providers():
        connected = descriptor.name in bundle.providers
        entry = {
            "provider": descriptor.name,
            "name": descriptor.display_name,
            "connected": connected,
        }
        if not connected:
            entry["authorizationUrl"] = connect_url(descriptor.name, claims)
        integrations.append(entry)
    return {
        "user": bundle.anchor.login if not bundle.anchor.is_placeholder else claims.get("sub", ""),
        "connected": list(bundle.connected_integrations),
        "integrations": integrations,
    }


def _claims() -> dict:
    return getattr(get_http_request().state, "token", None) or {}


@mcp.tool()
def list_integrations() -> dict:
    """List the integrations this server supports and which ones you have connected.

    Returns:
        Connection status per provider, with a connect link for the missing ones
    """
    claims = _claims()
    logger.info(f"[TOOL] list_integrations invoked by {claims.get('sub')}")
    return integration_status(claims)


@mcp.tool()
def connect_integration(provider: str) -> dict:
    """Get a link that connects an additional provider (gmail, calendar, drive, notion, slack).

    Args:
        provider: Provider name as listed by list_integrations
    """
    claims = _claims()
    logger.info(f"[TOOL] connect_integration invoked for {provider}")
    try:
        payload = authorization_required(provider, claims)
    except InvalidRequest as e:
        return {"error": "invalid_request", "message": e.description}
    if provider in _bundle_for(claims).providers:
        payload["message"] = f"{payload['provider']} is already connected; the link re-authorizes it."
    return payload

"""OAuth 2.1 endpoints for the multi-integration MCP server.

This module contains all OAuth-related endpoints:
- Discovery metadata (/.well-known/*)
- Client registration (/register)
- Authorization flow (/authorize GET + POST, /callback/{provider})
- Token endpoint (/token)
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from authflow.errors import InvalidRequest
from authflow.flow import AuthorizationFlow
from authflow.issuer import TokenIssuer

logger = logging.getLogger(__name__)

# Router for OAuth endpoints
router = APIRouter(tags=["oauth"])

# These will be set by init_oauth_routes()
_server_url: str = ""
_flow: AuthorizationFlow = None
_issuer: TokenIssuer = None


def init_oauth_routes(server_url: str, flow: AuthorizationFlow, issuer: TokenIssuer):
    """Initialize OAuth routes with the flow and token issuer.

    Must be called before including the router in the app.
    """
    global _server_url, _flow, _issuer
    _server_url = server_url
    _flow = flow
    _issuer = issuer


def _bearer(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    return auth_header[7:] if auth_header.startswith("Bearer ") else ""


# ============== OAuth 2.1 Discovery Endpoints ==============

@router.get("/.well-known/oauth-protected-resource")
async def oauth_protected_resource():
    """OAuth 2.0 Protected Resource Metadata (RFC 9728)."""
    return {
        "resource": _server_url,
        "authorization_servers": [_server_url],
        "scopes_supported": ["mcp:tools"],
        "bearer_methods_supported": ["header"],
    }


@router.get("/.well-known/oauth-authorization-server")
async def oauth_authorization_server():
    """OAuth 2.0 Authorization Server Metadata (RFC 8414)."""
    return {
        "issuer": _server_url,
        "authorization_endpoint": f"{_server_url}/authorize",
        "token_endpoint": f"{_server_url}/token",
        "registration_endpoint": f"{_server_url}/register",
        "scopes_supported": ["mcp:tools"],
        "response_types_supported": ["code"],
        "response_modes_supported": ["query"],
        "grant_types_supported": ["authorization_code", "refresh_token"],
        "token_endpoint_auth_methods_supported": ["none", "client_secret_post"],
        "code_challenge_methods_supported": ["S256"],
    }


# ============== Client Registration ==============

@router.post("/register")
async def register_client(request: Request):
    """OAuth 2.0 Dynamic Client Registration (RFC 7591)."""
    try:
        data = await request.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        raise InvalidRequest("Registration body must be a JSON object", code="invalid_client_metadata")

    client_info = _issuer.register_client(data)
    return JSONResponse({
        "client_id": client_info["client_id"],
        "client_secret": client_info["client_secret"],
        "client_name": client_info["client_name"],
        "redirect_uris": client_info["redirect_uris"],
        "grant_types": client_info["grant_types"],
        "response_types": client_info["response_types"],
        "token_endpoint_auth_method": client_info["token_endpoint_auth_method"]
    }, status_code=201)


# ============== Authorization Flow ==============

@router.get("/authorize")
async def authorize(request: Request):
    """Start a flow: consent page, or straight to the provider for approved clients.

    ?provider=X without client_id connects one more provider to an
    existing identity (Bearer token or connect_token).
    """
    return _flow.start(request.query_params, request.cookies, bearer=_bearer(request))


@router.post("/authorize")
async def authorize_submit(request: Request):
    """Handle consent form submission."""
    form = await request.form()
    return _flow.submit_consent(form, request.cookies)


@router.get("/callback/{provider}")
async def callback(provider: str, request: Request):
    """Provider redirect target: ?code=...&state=..."""
    return await _flow.callback(provider, request.query_params, request.cookies)


# ============== Token Endpoint ==============

@router.post("/token")
async def token(request: Request):
    """OAuth 2.0 Token Endpoint."""
    # Handle form data or JSON
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            data = await request.json()
        except ValueError:
            raise InvalidRequest("Malformed JSON body")
    else:
        data = dict(await request.form())

    grant_type = data.get("grant_type")
    logger.debug(f"[TOKEN] grant_type: {grant_type}, client_id: {data.get('client_id')}")

    if grant_type == "authorization_code":
        return JSONResponse(_issuer.exchange_code(
            code=data.get("code", ""),
            client_id=data.get("client_id", ""),
            redirect_uri=data.get("redirect_uri", ""),
            code_verifier=data.get("code_verifier", ""),
        ))

    if grant_type == "refresh_token":
        return JSONResponse(_issuer.refresh(data.get("refresh_token", "")))

    raise InvalidRequest(f"Unsupported grant_type: {grant_type}", code="unsupported_grant_type")

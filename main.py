"""Multi-Integration MCP Server.

One MCP endpoint (/mcp) backed by several upstream OAuth providers.
It handles:
- OAuth 2.1 for MCP clients (/authorize, /token, /register, discovery)
- Provider callbacks and incremental connection of feature providers
- MCP tools via tools.py, behind Bearer JWT validation
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware import Middleware
from supabase import create_client, Client

from config import load_settings
from logging_config import flush_on_shutdown, setup_logging

settings = load_settings()

# Initialize Supabase client
supabase: Client = None
if settings.supabase_url and settings.supabase_key:
    supabase = create_client(settings.supabase_url, settings.supabase_key)

setup_logging(server_url=settings.server_url, supabase_client=supabase)
logger = logging.getLogger(__name__)

if not settings.is_valid():
    raise RuntimeError("COOKIE_ENCRYPTION_KEY must be set")

SERVER_URL = settings.server_url
logger.info(f"[STARTUP] SERVER_URL: {SERVER_URL}")
logger.info(f"[STARTUP] Anchor provider: {settings.anchor_provider}")

# ============== Authorization Flow Components ==============
from authflow import jwt_utils
from authflow.approvals import ApprovalRegistry
from authflow.completion import AuthorizationCompleter
from authflow.credentials import CredentialStore
from authflow.csrf import CSRFGuard
from authflow.errors import register_error_handlers
from authflow.exchange import TokenExchanger
from authflow.flow import AuthorizationFlow
from authflow.identity import IdentityResolver
from authflow.issuer import TokenIssuer
from authflow.session import SessionBinder
from authflow.state_store import StateStore
from authflow.stores import create_store

if settings.jwt_secret:
    jwt_utils.set_secret(settings.jwt_secret)

kv = create_store(supabase)
credentials = CredentialStore(kv, ttl=settings.credential_ttl)
issuer = TokenIssuer(kv, SERVER_URL)
exchanger = TokenExchanger(settings)
flow = AuthorizationFlow(
    settings=settings,
    issuer=issuer,
    state_store=StateStore(kv, ttl=settings.state_ttl),
    csrf=CSRFGuard(kv),
    binder=SessionBinder(ttl=settings.state_ttl),
    approvals=ApprovalRegistry(settings.cookie_secret),
    resolver=IdentityResolver(exchanger, credentials, settings.anchor_provider),
    credentials=credentials,
    completer=AuthorizationCompleter(issuer),
)

# ============== FastMCP Server ==============
from tools import mcp, init_tools
init_tools(SERVER_URL, credentials, issuer)

from authflow.middleware import MCPOAuthMiddleware

# FastMCP app must exist before FastAPI: its lifespan starts the task group
mcp_http_app = mcp.http_app(
    path="/",
    transport="streamable-http",
    middleware=[Middleware(MCPOAuthMiddleware, server_url=SERVER_URL)],
)

# ============== FastAPI App ==============
app = FastAPI(
    title="Multi-Integration MCP Server",
    description="MCP server with OAuth 2.1 and chained upstream provider authorization",
    version="0.1.0",
    lifespan=flush_on_shutdown(mcp_http_app.lifespan),
)
register_error_handlers(app)

# Add CORS middleware for browser-based MCP client access
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/mcp", mcp_http_app)

from authflow.endpoints import router as oauth_router, init_oauth_routes
init_oauth_routes(SERVER_URL, flow, issuer)
app.include_router(oauth_router)


# ============== Server Info Endpoints ==============

@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "multi-integration-mcp"}


@app.get("/")
async def root():
    """Root endpoint with server info."""
    from authflow.providers import PROVIDERS
    return {
        "name": "Multi-Integration MCP Server",
        "version": "0.1.0",
        "endpoints": {
            "streamable_http": "/mcp",
            "authorize": "/authorize",
            "token": "/token",
        },
        "anchor_provider": settings.anchor_provider,
        "providers": sorted(PROVIDERS),
        "oauth": {
            "protected_resource": f"{SERVER_URL}/.well-known/oauth-protected-resource",
            "authorization_server": f"{SERVER_URL}/.well-known/oauth-authorization-server",
        },
    }


# ============== Main Entry Point ==============

if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting MCP server on {settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port)

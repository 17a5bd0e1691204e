"""OAuth middleware for MCP endpoints.

Validates Bearer tokens issued by /token and exposes their claims to the
tools as request.state.token. Uses JWT for stateless token validation -
tokens survive server restarts.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from authflow.jwt_utils import verify_access_token

logger = logging.getLogger(__name__)


class MCPOAuthMiddleware(BaseHTTPMiddleware):
    """Middleware to validate OAuth Bearer tokens for Streamable HTTP MCP endpoint."""

    def __init__(self, app, server_url: str):
        super().__init__(app)
        self.server_url = server_url

    def _unauthorized(self, description: str) -> JSONResponse:
        return JSONResponse(
            {"error": "unauthorized", "error_description": description},
            status_code=401,
            headers={
                "WWW-Authenticate": f'Bearer resource_metadata="{self.server_url}/.well-known/oauth-protected-resource"'
            },
        )

    async def dispatch(self, request: Request, call_next):
        # Check Bearer token
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            logger.info("[AUTH] Request rejected: no Bearer token")
            return self._unauthorized("Missing or invalid Authorization header")

        token_data = verify_access_token(auth_header[7:], issuer=self.server_url)
        if not token_data:
            logger.info("[AUTH] Request rejected: invalid or expired token")
            return self._unauthorized("Invalid or expired token")

        request.state.token = token_data
        logger.info(f"[AUTH] Request authorized: {token_data.get('sub')}")
        return await call_next(request)

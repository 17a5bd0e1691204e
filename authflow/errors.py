"""OAuth error taxonomy for the authorization flow.

Every failure raised inside the flow is an OAuthError carrying
(code, description, status_code). The boundary renders it as the
standard OAuth JSON error body: {"error": ..., "error_description": ...}.

- InvalidRequest (400): bad CSRF, bad session binding, bad/expired state
- UpstreamError (500 or upstream status): provider token/profile failures
- ServerError (500): corrupted stored state or unexpected faults
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from authflow.cookies import CookieDirective, apply_cookies

logger = logging.getLogger(__name__)


class OAuthError(Exception):
    """OAuth 2.1 error with a machine-readable code and HTTP status."""

    default_code = "server_error"
    default_status = 500

    def __init__(
        self,
        description: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        cookies: Optional[list[CookieDirective]] = None,
    ):
        super().__init__(description)
        self.code = code or self.default_code
        self.description = description
        self.status_code = status_code or self.default_status
        # Cookie directives that must still reach the browser (e.g. CSRF clear)
        self.cookies: list[CookieDirective] = list(cookies or [])

    def to_response(self) -> JSONResponse:
        response = JSONResponse(
            {"error": self.code, "error_description": self.description},
            status_code=self.status_code,
        )
        apply_cookies(response, self.cookies)
        return response


class InvalidRequest(OAuthError):
    default_code = "invalid_request"
    default_status = 400


class UpstreamError(OAuthError):
    """Provider call failed; keeps the upstream status and body for logs."""

    default_code = "upstream_error"
    default_status = 500

    def __init__(
        self,
        description: str,
        upstream_status: Optional[int] = None,
        upstream_body: str = "",
    ):
        status = upstream_status if upstream_status and upstream_status >= 400 else None
        super().__init__(description, status_code=status)
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body


class ServerError(OAuthError):
    default_code = "server_error"
    default_status = 500


def register_error_handlers(app: FastAPI) -> None:
    """Install handlers that turn flow errors into OAuth JSON responses."""

    @app.exception_handler(OAuthError)
    async def oauth_error_handler(request: Request, exc: OAuthError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"[ERROR] {request.method} {request.url.path}: {exc.code} - {exc.description}")
        else:
            logger.info(f"[ERROR] {request.method} {request.url.path}: {exc.code} - {exc.description}")
        return exc.to_response()

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"[ERROR] Unhandled error on {request.method} {request.url.path}")
        return ServerError("Internal server error").to_response()

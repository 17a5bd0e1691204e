"""Final step of a flow: hand the bundle to the issuer and answer the browser."""

import logging
from typing import Optional

from fastapi.responses import HTMLResponse, RedirectResponse
from starlette.responses import Response

from authflow.cookies import CookieDirective, apply_cookies
from authflow.issuer import TokenIssuer
from authflow.models import AuthorizationRequest, CredentialBundle
from authflow.providers import PROVIDERS
from authflow.templates import render_connected_page

logger = logging.getLogger(__name__)


def _display_name(provider: str) -> str:
    descriptor = PROVIDERS.get(provider)
    return descriptor.display_name if descriptor else provider


class AuthorizationCompleter:
    def __init__(self, issuer: TokenIssuer):
        self.issuer = issuer

    def complete(
        self,
        bundle: CredentialBundle,
        request: Optional[AuthorizationRequest],
        provider: str,
        cookies: list[CookieDirective] = None,
    ) -> Response:
        """Redirect to the client with a code, or confirm a direct connection.

        Pending cookie directives (the binding clear) ride on the same response.
        """
        if request is not None:
            redirect_url = self.issuer.complete_authorization(request, bundle)
            response = RedirectResponse(url=redirect_url, status_code=302)
        else:
            logger.info(f"[COMPLETE] Direct connection of {provider} for {bundle.anchor.login}")
            response = HTMLResponse(render_connected_page(
                _display_name(provider),
                [_display_name(name) for name in bundle.connected_integrations],
            ))
        return apply_cookies(response, cookies or [])

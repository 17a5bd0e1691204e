"""Authorization state machine shared by every provider.

START -> (client approved? skip consent : render consent)
      -> state issued + bound to browser -> provider redirect
      -> callback -> state consumed -> binding verified
      -> token exchange -> identity resolve/merge -> completion

Nothing here branches on a provider name; the ProviderDescriptor row
drives endpoints, scopes and response parsing. Every failure is terminal:
the browser has to start again at /authorize.
"""

import base64
import json
import logging
from typing import Mapping, Optional

from fastapi.responses import HTMLResponse, RedirectResponse
from starlette.responses import Response

from authflow import jwt_utils
from authflow.approvals import ApprovalRegistry
from authflow.completion import AuthorizationCompleter
from authflow.cookies import (
    APPROVED_CLIENTS_COOKIE,
    CSRF_COOKIE,
    SESSION_BINDING_COOKIE,
    CookieDirective,
    apply_cookies,
)
from authflow.credentials import CredentialStore
from authflow.csrf import CSRFGuard
from authflow.errors import InvalidRequest, OAuthError, ServerError
from authflow.identity import IdentityResolver
from authflow.issuer import TokenIssuer
from authflow.models import AuthorizationRequest, CredentialBundle, OrchestrationPayload
from authflow.providers import PROVIDERS, ProviderDescriptor, build_authorize_url, get_provider
from authflow.session import SessionBinder
from authflow.state_store import StateStore
from authflow.templates import render_consent_page

logger = logging.getLogger(__name__)

SERVER_NAME = "Multi-Integration MCP Server"

# Consent page must never be framed
CONSENT_HEADERS = {
    "X-Frame-Options": "DENY",
    "Content-Security-Policy": "frame-ancestors 'none'",
}


def encode_consent_state(request: AuthorizationRequest, provider: str) -> str:
    data = {"request": request.to_dict(), "provider": provider}
    return base64.urlsafe_b64encode(json.dumps(data).encode()).decode()


def decode_consent_state(encoded: str) -> tuple[AuthorizationRequest, str]:
    """Inverse of encode_consent_state. Raises InvalidRequest on anything malformed."""
    try:
        data = json.loads(base64.urlsafe_b64decode(encoded.encode()))
        request = AuthorizationRequest.from_dict(data["request"])
        provider = data.get("provider") or ""
    except (ValueError, KeyError, TypeError, AttributeError):
        raise InvalidRequest("Invalid state data")
    if not request.client_id:
        raise InvalidRequest("Invalid request")
    return request, provider


class AuthorizationFlow:
    def __init__(
        self,
        settings,
        issuer: TokenIssuer,
        state_store: StateStore,
        csrf: CSRFGuard,
        binder: SessionBinder,
        approvals: ApprovalRegistry,
        resolver: IdentityResolver,
        credentials: CredentialStore,
        completer: AuthorizationCompleter,
    ):
        self.settings = settings
        self.issuer = issuer
        self.state_store = state_store
        self.csrf = csrf
        self.binder = binder
        self.approvals = approvals
        self.resolver = resolver
        self.credentials = credentials
        self.completer = completer

        self.anchor = get_provider(settings.anchor_provider)
        if not self.anchor.is_anchor:
            raise ValueError(f"{settings.anchor_provider} cannot anchor identities")

    # ============== GET /authorize ==============

    def start(self, params: Mapping[str, str], cookies: Mapping[str, str], bearer: Optional[str] = None) -> Response:
        provider_name = params.get("provider")
        if provider_name and not params.get("client_id"):
            return self._start_direct(get_provider(provider_name), params.get("connect_token"), bearer)

        request = self.issuer.parse_auth_request(params)
        descriptor = get_provider(provider_name) if provider_name else self.anchor

        if self.approvals.is_approved(cookies.get(APPROVED_CLIENTS_COOKIE), request.client_id):
            logger.info(f"[AUTHORIZE] Client {request.client_id[:8]}... already approved, skipping consent")
            return self._redirect_to_provider(descriptor, OrchestrationPayload(descriptor.name, request))

        return self._render_consent(request, descriptor)

    def _render_consent(self, request: AuthorizationRequest, descriptor: ProviderDescriptor) -> Response:
        csrf_token, csrf_cookie = self.csrf.issue()
        client = self.issuer.lookup_client(request.client_id) or {}

        if descriptor.is_anchor:
            integrations = [descriptor.display_name]
            for name in request.scope:
                feature = PROVIDERS.get(name)
                if feature and not feature.is_anchor:
                    integrations.append(f"{feature.display_name} (connect separately)")
            description = f"This MCP Server will connect to: {', '.join(integrations)}"
        else:
            integrations = [descriptor.display_name]
            description = f"Connect your {descriptor.display_name} account to use additional features."

        page = render_consent_page(
            server_name=SERVER_NAME,
            description=description,
            client_name=client.get("client_name", ""),
            client_uri=client.get("client_uri", ""),
            integrations=integrations,
            state=encode_consent_state(request, descriptor.name),
            csrf_token=csrf_token,
        )
        response = HTMLResponse(page, headers=CONSENT_HEADERS)
        return apply_cookies(response, [csrf_cookie])

    def _start_direct(
        self,
        descriptor: ProviderDescriptor,
        connect_token: Optional[str],
        bearer: Optional[str],
    ) -> Response:
        """Incremental connection of one provider without a client handshake."""
        bundle = self._prior_bundle(connect_token, bearer)
        logger.info(f"[AUTHORIZE] Direct {descriptor.name} connection for {bundle.anchor.login}")
        payload = OrchestrationPayload(descriptor.name, request=None, is_direct=True, bundle=bundle)
        return self._redirect_to_provider(descriptor, payload)

    def _prior_bundle(self, connect_token: Optional[str], bearer: Optional[str]) -> CredentialBundle:
        claims = None
        if bearer:
            claims = jwt_utils.verify_access_token(bearer, issuer=self.settings.server_url)
        if claims is None and connect_token:
            claims = jwt_utils.verify_connect_token(connect_token, issuer=self.settings.server_url)
            if claims is None:
                raise InvalidRequest("Invalid or expired connect token")
        if claims is None:
            return CredentialBundle()

        stored = self.credentials.get(claims["sub"])
        if stored is not None:
            return stored
        grant = self.issuer.load_grant(claims.get("grant", ""))
        return grant or CredentialBundle()

    def _redirect_to_provider(
        self,
        descriptor: ProviderDescriptor,
        payload: OrchestrationPayload,
        cookies: list[CookieDirective] = None,
    ) -> Response:
        token = self.state_store.create(payload.to_dict(), ttl=self.settings.state_ttl)
        binding = self.binder.bind(token)

        client_id, _ = self.settings.provider_client(descriptor.family)
        url = build_authorize_url(descriptor, client_id, self.settings.callback_url(descriptor.name), token)
        logger.info(f"[AUTHORIZE] Redirecting to {descriptor.name} (state {token[:8]}...)")

        response = RedirectResponse(url=url, status_code=302)
        return apply_cookies(response, list(cookies or []) + [binding])

    # ============== POST /authorize ==============

    def submit_consent(self, form: Mapping[str, str], cookies: Mapping[str, str]) -> Response:
        clear_csrf = self.csrf.validate(form.get("csrf_token"), cookies.get(CSRF_COOKIE))

        try:
            encoded = form.get("state")
            if not encoded:
                raise InvalidRequest("Missing state in form data")
            request, provider_name = decode_consent_state(encoded)
            request = self.issuer.validate_request(request)
            descriptor = get_provider(provider_name) if provider_name else self.anchor
        except OAuthError as exc:
            exc.cookies.append(clear_csrf)
            raise

        approval = self.approvals.approve(cookies.get(APPROVED_CLIENTS_COOKIE), request.client_id)
        logger.info(f"[CONSENT] Client {request.client_id[:8]}... approved")
        return self._redirect_to_provider(
            descriptor,
            OrchestrationPayload(descriptor.name, request),
            cookies=[approval, clear_csrf],
        )

    # ============== GET /callback/{provider} ==============

    async def callback(self, provider_name: str, params: Mapping[str, str], cookies: Mapping[str, str]) -> Response:
        descriptor = get_provider(provider_name)
        state_token = params.get("state")
        if not state_token:
            raise InvalidRequest("Missing state parameter")

        # Consume before checking the binding: a rejected callback burns the state
        data = self.state_store.consume(state_token)
        clear_binding = self.binder.verify(state_token, cookies.get(SESSION_BINDING_COOKIE))

        try:
            try:
                payload = OrchestrationPayload.from_dict(data)
            except (KeyError, TypeError, AttributeError):
                raise ServerError("Invalid state data")

            if payload.provider != descriptor.name:
                raise InvalidRequest(f"State was issued for {payload.provider}, not {descriptor.name}")
            if not payload.is_direct and payload.request is None:
                raise ServerError("Invalid state data")

            if params.get("error"):
                logger.info(f"[CALLBACK] {descriptor.name} denied: {params['error']}")
                raise InvalidRequest(
                    params.get("error_description") or f"{descriptor.display_name} authorization was denied",
                    code="access_denied",
                )

            code = params.get("code")
            if not code:
                raise InvalidRequest("Missing code parameter")

            bundle = await self.resolver.resolve(
                descriptor, code, self.settings.callback_url(descriptor.name), carried=payload.bundle
            )
        except OAuthError as exc:
            exc.cookies.append(clear_binding)
            raise

        if not payload.is_direct and self.resolver.is_anchor(descriptor):
            bundle = self.resolver.fold_stored(bundle)
        self.resolver.remember(bundle, descriptor.name)

        logger.info(f"[CALLBACK] {descriptor.name} connected for {bundle.anchor.login}: {bundle.connected_integrations}")
        return self.completer.complete(
            bundle,
            None if payload.is_direct else payload.request,
            descriptor.name,
            cookies=[clear_binding],
        )

"""Authorization-code exchange and anchor profile lookup.

One upstream round trip per call, no retries: a failed call surfaces
immediately as UpstreamError carrying the upstream status and body.
"""

import base64
import json
import logging
import time
from typing import Optional
from urllib.parse import parse_qs

import httpx

from authflow.errors import InvalidRequest, UpstreamError
from authflow.models import IdentityAnchor, ProviderCredential
from authflow.providers import ProviderDescriptor, TokenResponseFormat

logger = logging.getLogger(__name__)

USER_AGENT = "multi-integration-mcp"


def parse_token_response(response: httpx.Response, expected: TokenResponseFormat) -> dict:
    """Decode a token endpoint body that may be JSON or form-encoded.

    The Content-Type wins; the catalog's declared format is the fallback.
    """
    text = response.text
    content_type = response.headers.get("content-type", "")
    looks_json = "json" in content_type or text.lstrip().startswith("{")

    if looks_json or (expected is TokenResponseFormat.JSON and "form" not in content_type):
        try:
            data = json.loads(text)
        except ValueError:
            data = None
        if isinstance(data, dict):
            return data

    return {key: values[0] for key, values in parse_qs(text).items()}


class TokenExchanger:
    def __init__(self, settings, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self.settings = settings
        self._client = client
        self.timeout = timeout

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def exchange(self, descriptor: ProviderDescriptor, code: str, redirect_uri: str) -> ProviderCredential:
        """Trade an authorization code for the provider's tokens."""
        if not code:
            raise InvalidRequest("Missing code parameter")

        client_id, client_secret = self.settings.provider_client(descriptor.family)
        form = {
            "code": code,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        }
        headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
        if descriptor.basic_auth:
            basic = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()
            headers["Authorization"] = f"Basic {basic}"
        else:
            form["client_id"] = client_id
            form["client_secret"] = client_secret

        logger.info(f"[EXCHANGE] {descriptor.name}: code {code[:6]}... -> {descriptor.token_url}")
        try:
            response = await self._http().post(descriptor.token_url, data=form, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"[EXCHANGE] {descriptor.name}: request failed: {e}")
            raise UpstreamError(f"Failed to reach {descriptor.display_name} token endpoint: {e}")

        if response.status_code >= 400:
            logger.error(f"[EXCHANGE] {descriptor.name}: status {response.status_code}: {response.text[:200]}")
            raise UpstreamError(
                f"Failed to fetch access token: {response.text}",
                upstream_status=response.status_code,
                upstream_body=response.text,
            )

        data = parse_token_response(response, descriptor.response_format)
        access_token = data.get("access_token")
        if not access_token:
            # GitHub and Slack report errors in a 200 body
            detail = data.get("error_description") or data.get("error") or "no access_token in response"
            logger.error(f"[EXCHANGE] {descriptor.name}: {detail}")
            raise UpstreamError(
                f"Missing access token: {detail}",
                upstream_status=response.status_code,
                upstream_body=response.text,
            )

        expires_at = None
        if data.get("expires_in"):
            try:
                expires_at = int(time.time()) + int(data["expires_in"])
            except (TypeError, ValueError):
                expires_at = None

        return ProviderCredential(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or None,
            scope=data.get("scope") or None,
            expires_at=expires_at,
        )

    async def fetch_profile(self, descriptor: ProviderDescriptor, access_token: str) -> IdentityAnchor:
        """Look up the signed-in user on an anchor provider."""
        mapping = descriptor.profile
        if mapping is None:
            raise UpstreamError(f"{descriptor.display_name} has no profile endpoint")

        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
        try:
            response = await self._http().get(mapping.url, headers=headers)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to fetch {descriptor.display_name} profile: {e}")

        if response.status_code >= 400:
            raise UpstreamError(
                f"Failed to fetch {descriptor.display_name} profile",
                upstream_status=response.status_code,
                upstream_body=response.text,
            )

        try:
            profile = response.json()
        except ValueError:
            raise UpstreamError(f"Invalid {descriptor.display_name} profile response", upstream_body=response.text)
        if not isinstance(profile, dict):
            raise UpstreamError(f"Invalid {descriptor.display_name} profile response", upstream_body=response.text)

        login = profile.get(mapping.login_field)
        if not login:
            raise UpstreamError(f"{descriptor.display_name} profile has no {mapping.login_field}")

        return IdentityAnchor(
            login=str(login),
            name=profile.get(mapping.name_field) or str(login),
            email=profile.get(mapping.email_field) or "",
        )

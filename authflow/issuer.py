"""Host boundary: MCP client registration and token issuance.

The authorization flow hands a finished credential bundle to
complete_authorization(); the issuer mints a single-use code, and the
client later trades it at /token for JWTs. The bundle itself is kept
under grant:<id> so downstream tools can reach the provider credentials.
"""

import base64
import hashlib
import hmac
import json
import logging
import secrets
import time
from dataclasses import replace
from typing import Mapping, Optional
from urllib.parse import urlencode

from authflow import jwt_utils
from authflow.errors import InvalidRequest
from authflow.models import AuthorizationRequest, CredentialBundle
from authflow.stores import KeyValueStore

logger = logging.getLogger(__name__)

CODE_TTL_SECONDS = 600
DEFAULT_REDIRECT_URIS = ["https://chatgpt.com/connector_platform_oauth_redirect"]


def pkce_challenge(verifier: str) -> str:
    return base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).rstrip(b"=").decode()


class TokenIssuer:
    def __init__(self, kv: KeyValueStore, server_url: str):
        self.kv = kv
        self.server_url = server_url

    # ============== Client Registration ==============

    def register_client(self, data: dict) -> dict:
        """Dynamic Client Registration (RFC 7591)."""
        redirect_uris = data.get("redirect_uris")
        if redirect_uris is not None and (
            not isinstance(redirect_uris, list) or not all(isinstance(uri, str) and uri for uri in redirect_uris)
        ):
            raise InvalidRequest("redirect_uris must be a list of URIs", code="invalid_client_metadata")

        client_info = {
            "client_id": secrets.token_urlsafe(24),
            "client_secret": secrets.token_urlsafe(32),
            "client_name": data.get("client_name", "MCP Client"),
            "client_uri": data.get("client_uri", ""),
            "redirect_uris": data.get("redirect_uris") or DEFAULT_REDIRECT_URIS,
            "grant_types": data.get("grant_types", ["authorization_code", "refresh_token"]),
            "response_types": data.get("response_types", ["code"]),
            "token_endpoint_auth_method": data.get("token_endpoint_auth_method", "none"),
            "created_at": int(time.time()),
        }
        self.kv.put(f"client:{client_info['client_id']}", json.dumps(client_info))
        logger.info(f"[REGISTER] Registered client {client_info['client_name']}")
        return client_info

    def lookup_client(self, client_id: str) -> Optional[dict]:
        stored = self.kv.get(f"client:{client_id}") if client_id else None
        return json.loads(stored) if stored else None

    # ============== Authorization Requests ==============

    def parse_auth_request(self, params: Mapping[str, str]) -> AuthorizationRequest:
        """Build an AuthorizationRequest from /authorize query parameters."""
        response_type = params.get("response_type", "code")
        if response_type != "code":
            raise InvalidRequest("Only response_type=code is supported", code="unsupported_response_type")

        request = AuthorizationRequest(
            client_id=params.get("client_id", ""),
            redirect_uri=params.get("redirect_uri", ""),
            scope=tuple(params.get("scope", "").split()),
            state=params.get("state", ""),
            code_challenge=params.get("code_challenge", ""),
            code_challenge_method=params.get("code_challenge_method", ""),
        )
        return self.validate_request(request)

    def validate_request(self, request: AuthorizationRequest) -> AuthorizationRequest:
        """Check client and redirect URI; fills in a sole registered redirect URI."""
        if not request.client_id:
            raise InvalidRequest("Missing client_id parameter")

        client = self.lookup_client(request.client_id)
        if client is None:
            raise InvalidRequest("Unknown client", code="invalid_client")

        redirect_uris = client.get("redirect_uris", [])
        if not request.redirect_uri:
            if len(redirect_uris) != 1:
                raise InvalidRequest("Missing redirect_uri parameter")
            request = replace(request, redirect_uri=redirect_uris[0])
        elif request.redirect_uri not in redirect_uris:
            raise InvalidRequest("redirect_uri is not registered for this client")

        return request

    def complete_authorization(self, request: AuthorizationRequest, bundle: CredentialBundle) -> str:
        """Mint a code for the finished bundle and return the client redirect URL."""
        code = secrets.token_urlsafe(32)
        grant_id = secrets.token_urlsafe(16)
        self.kv.put(f"grant:{grant_id}", json.dumps(bundle.to_dict()), ttl=jwt_utils.REFRESH_TOKEN_EXPIRE_SECONDS)
        self.kv.put(
            f"code:{code}",
            json.dumps({"request": request.to_dict(), "grant": grant_id, "anchor": bundle.anchor.to_dict(),
                        "integrations": bundle.connected_integrations}),
            ttl=CODE_TTL_SECONDS,
        )
        label = f"{bundle.anchor.name or bundle.anchor.login} ({', '.join(bundle.connected_integrations)})"
        logger.info(f"[ISSUER] Authorization completed for {label}")

        params = {"code": code}
        if request.state:
            params["state"] = request.state
        separator = "&" if "?" in request.redirect_uri else "?"
        return f"{request.redirect_uri}{separator}{urlencode(params)}"

    def load_grant(self, grant_id: str) -> Optional[CredentialBundle]:
        stored = self.kv.get(f"grant:{grant_id}") if grant_id else None
        return CredentialBundle.from_dict(json.loads(stored)) if stored else None

    # ============== Token Endpoint ==============

    def exchange_code(self, code: str, client_id: str, redirect_uri: str, code_verifier: str) -> dict:
        """authorization_code grant. Codes are single-use."""
        stored = self.kv.get(f"code:{code}") if code else None
        if stored is None:
            raise InvalidRequest("Invalid or expired authorization code", code="invalid_grant")
        self.kv.delete(f"code:{code}")

        data = json.loads(stored)
        request = AuthorizationRequest.from_dict(data["request"])
        if client_id and client_id != request.client_id:
            raise InvalidRequest("Code was issued to another client", code="invalid_grant")
        if redirect_uri and redirect_uri != request.redirect_uri:
            raise InvalidRequest("redirect_uri mismatch", code="invalid_grant")
        if request.code_challenge:
            if not code_verifier or not hmac.compare_digest(pkce_challenge(code_verifier), request.code_challenge):
                raise InvalidRequest("PKCE verification failed", code="invalid_grant")

        anchor = data.get("anchor") or {}
        return self._issue(
            user_id=anchor.get("login", ""),
            email=anchor.get("email", ""),
            name=anchor.get("name", ""),
            client_id=request.client_id,
            scope=" ".join(request.scope),
            integrations=data.get("integrations", []),
            grant_id=data["grant"],
        )

    def refresh(self, refresh_token: str) -> dict:
        """refresh_token grant: re-issue tokens for the same grant."""
        claims = jwt_utils.verify_refresh_token(refresh_token or "", issuer=self.server_url)
        if not claims:
            raise InvalidRequest("Invalid or expired refresh token", code="invalid_grant")

        bundle = self.load_grant(claims.get("grant", ""))
        if bundle is None:
            raise InvalidRequest("Grant no longer exists", code="invalid_grant")

        return self._issue(
            user_id=claims["sub"],
            email=bundle.anchor.email,
            name=bundle.anchor.name,
            client_id=claims.get("client_id", ""),
            scope=claims.get("scope", ""),
            integrations=bundle.connected_integrations,
            grant_id=claims["grant"],
        )

    def _issue(self, user_id, email, name, client_id, scope, integrations, grant_id) -> dict:
        access_token = jwt_utils.create_access_token(
            user_id=user_id,
            user_email=email,
            user_name=name,
            client_id=client_id,
            scope=scope,
            integrations=integrations,
            grant_id=grant_id,
            issuer=self.server_url,
        )
        refresh_token = jwt_utils.create_refresh_token(
            user_id=user_id,
            client_id=client_id,
            scope=scope,
            grant_id=grant_id,
            issuer=self.server_url,
        )
        logger.info(f"[TOKEN] Access token created for user: {user_id}")
        return {
            "access_token": access_token,
            "token_type": "Bearer",
            "expires_in": jwt_utils.ACCESS_TOKEN_EXPIRE_SECONDS,
            "refresh_token": refresh_token,
            "scope": scope,
        }

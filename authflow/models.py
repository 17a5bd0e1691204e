"""Data carried through an authorization attempt.

All types serialize to plain JSON dicts so they can travel through the
key/value store (orchestration state, credential records) and the
consent form.
"""

from dataclasses import dataclass, field
from typing import Optional

PLACEHOLDER_LOGIN = "unknown user"


@dataclass(frozen=True)
class AuthorizationRequest:
    """OAuth request from an MCP client, as parsed by the host issuer."""

    client_id: str
    redirect_uri: str
    scope: tuple[str, ...] = ()
    state: str = ""
    code_challenge: str = ""
    code_challenge_method: str = ""

    def to_dict(self) -> dict:
        return {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": list(self.scope),
            "state": self.state,
            "code_challenge": self.code_challenge,
            "code_challenge_method": self.code_challenge_method,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuthorizationRequest":
        return cls(
            client_id=data["client_id"],
            redirect_uri=data["redirect_uri"],
            scope=tuple(data.get("scope") or ()),
            state=data.get("state", ""),
            code_challenge=data.get("code_challenge", ""),
            code_challenge_method=data.get("code_challenge_method", ""),
        )


@dataclass(frozen=True)
class ProviderCredential:
    access_token: str
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    expires_at: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "scope": self.scope,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProviderCredential":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope"),
            expires_at=data.get("expires_at"),
        )


@dataclass(frozen=True)
class IdentityAnchor:
    """The identity that names a merged session."""

    login: str = PLACEHOLDER_LOGIN
    name: str = ""
    email: str = ""

    @property
    def is_placeholder(self) -> bool:
        return not self.login or self.login == PLACEHOLDER_LOGIN

    @property
    def key(self) -> str:
        return self.login

    def to_dict(self) -> dict:
        return {"login": self.login, "name": self.name, "email": self.email}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "IdentityAnchor":
        if not data:
            return cls()
        return cls(
            login=data.get("login") or PLACEHOLDER_LOGIN,
            name=data.get("name") or "",
            email=data.get("email") or "",
        )


@dataclass
class CredentialBundle:
    """Anchor identity plus one credential per connected provider."""

    anchor: IdentityAnchor = field(default_factory=IdentityAnchor)
    providers: dict[str, ProviderCredential] = field(default_factory=dict)
    connected_integrations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "anchor": self.anchor.to_dict(),
            "providers": {name: cred.to_dict() for name, cred in self.providers.items()},
            "connected_integrations": list(self.connected_integrations),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "CredentialBundle":
        if not data:
            return cls()
        return cls(
            anchor=IdentityAnchor.from_dict(data.get("anchor")),
            providers={
                name: ProviderCredential.from_dict(cred)
                for name, cred in (data.get("providers") or {}).items()
            },
            connected_integrations=list(data.get("connected_integrations") or []),
        )


@dataclass
class OrchestrationPayload:
    """What the flow stores under state:<token> while the user is at a provider."""

    provider: str
    request: Optional[AuthorizationRequest] = None
    is_direct: bool = False
    bundle: Optional[CredentialBundle] = None

    def to_dict(self) -> dict:
        return {
            "provider": self.provider,
            "request": self.request.to_dict() if self.request else None,
            "is_direct": self.is_direct,
            "bundle": self.bundle.to_dict() if self.bundle else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OrchestrationPayload":
        request = data.get("request")
        bundle = data.get("bundle")
        return cls(
            provider=data["provider"],
            request=AuthorizationRequest.from_dict(request) if request else None,
            is_direct=bool(data.get("is_direct")),
            bundle=CredentialBundle.from_dict(bundle) if bundle else None,
        )

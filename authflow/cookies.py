"""Cookie names and Set-Cookie directives shared by the flow components.

All cookies use the __Host- prefix (Secure, Path=/, no Domain) so that a
sibling subdomain cannot inject them. Components never touch responses
directly; they return CookieDirective values that the endpoint applies.
"""

from dataclasses import dataclass

from starlette.responses import Response

CSRF_COOKIE = "__Host-CSRF_TOKEN"
SESSION_BINDING_COOKIE = "__Host-CONSENTED_STATE"
APPROVED_CLIENTS_COOKIE = "__Host-APPROVED_CLIENTS"

TEN_MINUTES = 600
THIRTY_DAYS = 30 * 24 * 60 * 60


@dataclass(frozen=True)
class CookieDirective:
    name: str
    value: str
    max_age: int

    @classmethod
    def clear(cls, name: str) -> "CookieDirective":
        return cls(name=name, value="", max_age=0)

    @property
    def is_clear(self) -> bool:
        return self.max_age == 0


def apply_cookies(response: Response, directives: list[CookieDirective]) -> Response:
    """Attach directives to a response as HttpOnly, Secure, SameSite=Lax cookies."""
    for directive in directives:
        response.set_cookie(
            key=directive.name,
            value=directive.value,
            max_age=directive.max_age,
            path="/",
            secure=True,
            httponly=True,
            samesite="lax",
        )
    return response

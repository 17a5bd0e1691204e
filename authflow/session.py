"""Binds a state token to the browser that consented to it.

The cookie holds the SHA-256 of the state token, not the token itself,
so a leaked state value (URL logs, referrer) cannot be turned into a
valid cookie.
"""

import hashlib
import hmac
import logging
from typing import Optional

from authflow.cookies import SESSION_BINDING_COOKIE, TEN_MINUTES, CookieDirective
from authflow.errors import InvalidRequest

logger = logging.getLogger(__name__)


def hash_state(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


class SessionBinder:
    def __init__(self, ttl: int = TEN_MINUTES):
        self.ttl = ttl

    def bind(self, token: str) -> CookieDirective:
        return CookieDirective(SESSION_BINDING_COOKIE, hash_state(token), self.ttl)

    def verify(self, token: str, cookie_value: Optional[str]) -> CookieDirective:
        """Check the binding cookie; returns the directive that clears it."""
        if not cookie_value:
            raise InvalidRequest("Missing session binding cookie - authorization flow must be restarted")

        if not hmac.compare_digest(hash_state(token).encode(), cookie_value.encode()):
            logger.warning(f"[SESSION] Binding mismatch for state {token[:8]}...")
            raise InvalidRequest("State token does not match session - possible CSRF attack detected")

        return CookieDirective.clear(SESSION_BINDING_COOKIE)

"""CSRF protection for the consent form.

The token lives in a __Host- cookie and is mirrored in a hidden form
field. A server-side marker (csrf:<token>) makes every token single-use:
the marker is consumed on the first validation attempt, whatever its
outcome, and the cookie is cleared on both success and failure.
"""

import hmac
import logging
import secrets
from typing import Optional

from authflow.cookies import CSRF_COOKIE, TEN_MINUTES, CookieDirective
from authflow.errors import InvalidRequest
from authflow.stores import KeyValueStore

logger = logging.getLogger(__name__)


class CSRFGuard:
    def __init__(self, kv: KeyValueStore, ttl: int = TEN_MINUTES):
        self.kv = kv
        self.ttl = ttl

    def issue(self) -> tuple[str, CookieDirective]:
        """Generate a token; returns (token for the form, cookie to set)."""
        token = secrets.token_urlsafe(32)
        self.kv.put(f"csrf:{token}", "1", ttl=self.ttl)
        return token, CookieDirective(CSRF_COOKIE, token, self.ttl)

    def validate(self, form_token: Optional[str], cookie_token: Optional[str]) -> CookieDirective:
        """Check the form token against the cookie token.

        Returns the cookie-clearing directive on success.

        Raises:
            InvalidRequest: missing, mismatched, or already-used token. The
                error carries the same clearing directive.
        """
        clear = CookieDirective.clear(CSRF_COOKIE)

        # Burn both markers before comparing so no token survives an attempt
        live = {token: self._burn(token) for token in {form_token, cookie_token} if token}
        marker_live = live.get(cookie_token, False)

        if not form_token:
            raise InvalidRequest("Missing CSRF token in form data", cookies=[clear])
        if not cookie_token:
            raise InvalidRequest("Missing CSRF token cookie", cookies=[clear])
        if not hmac.compare_digest(form_token.encode(), cookie_token.encode()):
            logger.warning("[CSRF] Token mismatch on consent submission")
            raise InvalidRequest("CSRF token mismatch", cookies=[clear])
        if not marker_live:
            logger.warning("[CSRF] Rejected reused or expired token")
            raise InvalidRequest("CSRF token expired or already used", cookies=[clear])

        return clear

    def _burn(self, token: str) -> bool:
        marker_key = f"csrf:{token}"
        was_live = self.kv.get(marker_key) is not None
        self.kv.delete(marker_key)
        return was_live

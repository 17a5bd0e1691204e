"""Remembers which MCP clients the user already approved.

Cookie format: <hex HMAC-SHA256>.<urlsafe base64 of JSON list>, signed
over the encoded text. Any cookie that is missing, malformed or fails
verification reads as "no approvals"; it never aborts the request.
"""

import base64
import hashlib
import hmac
import json
import logging
from typing import Optional

from authflow.cookies import APPROVED_CLIENTS_COOKIE, THIRTY_DAYS, CookieDirective

logger = logging.getLogger(__name__)


class ApprovalRegistry:
    def __init__(self, secret: str, max_age: int = THIRTY_DAYS):
        if not secret:
            raise ValueError("A cookie signing secret is required")
        self._key = secret.encode()
        self.max_age = max_age

    def _sign(self, encoded: str) -> str:
        return hmac.new(self._key, encoded.encode(), hashlib.sha256).hexdigest()

    def read(self, cookie_value: Optional[str]) -> list[str]:
        """Return the verified approved-client list, or [] for anything untrusted."""
        if not cookie_value:
            return []
        try:
            signature, encoded = cookie_value.split(".")
            if not hmac.compare_digest(self._sign(encoded).encode(), signature.encode()):
                logger.debug("[APPROVAL] Cookie signature verification failed")
                return []
            padded = encoded + "=" * (-len(encoded) % 4)
            clients = json.loads(base64.urlsafe_b64decode(padded.encode()))
        except (ValueError, TypeError):
            logger.debug("[APPROVAL] Malformed approved-clients cookie")
            return []

        if not isinstance(clients, list) or not all(isinstance(c, str) for c in clients):
            return []
        return clients

    def is_approved(self, cookie_value: Optional[str], client_id: str) -> bool:
        return client_id in self.read(cookie_value)

    def approve(self, cookie_value: Optional[str], client_id: str) -> CookieDirective:
        """Add client_id to the approved set and return the re-signed cookie."""
        clients = self.read(cookie_value)
        if client_id not in clients:
            clients.append(client_id)

        encoded = base64.urlsafe_b64encode(json.dumps(clients).encode()).decode().rstrip("=")
        return CookieDirective(APPROVED_CLIENTS_COOKIE, f"{self._sign(encoded)}.{encoded}", self.max_age)

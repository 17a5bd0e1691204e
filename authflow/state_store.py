"""One-time orchestration state.

A state token maps to an arbitrary JSON payload for at most `ttl` seconds
and can be read exactly once: every read is destructive. Expired,
consumed and never-issued tokens are reported identically.
"""

import json
import logging
import secrets
from typing import Any

from authflow.errors import InvalidRequest, ServerError
from authflow.stores import KeyValueStore

logger = logging.getLogger(__name__)

STATE_TTL_SECONDS = 600


class StateStore:
    def __init__(self, kv: KeyValueStore, ttl: int = STATE_TTL_SECONDS):
        self.kv = kv
        self.ttl = ttl

    @staticmethod
    def _key(token: str) -> str:
        return f"state:{token}"

    def create(self, payload: Any, ttl: int = None) -> str:
        """Store payload under a fresh random token and return the token."""
        token = secrets.token_urlsafe(32)
        self.kv.put(self._key(token), json.dumps(payload), ttl=ttl or self.ttl)
        logger.debug(f"[STATE] Created state {token[:8]}...")
        return token

    def consume(self, token: str) -> Any:
        """Return the payload stored under token and delete it.

        Raises:
            InvalidRequest: token missing, expired or already consumed
            ServerError: stored payload is not valid JSON
        """
        if not token:
            raise InvalidRequest("Missing state parameter")

        key = self._key(token)
        stored = self.kv.get(key)
        if stored is None:
            raise InvalidRequest("Invalid or expired state")

        self.kv.delete(key)
        logger.debug(f"[STATE] Consumed state {token[:8]}...")

        try:
            return json.loads(stored)
        except ValueError:
            logger.error(f"[STATE] Corrupted payload for state {token[:8]}...")
            raise ServerError("Invalid state data")

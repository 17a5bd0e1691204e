"""Key/value stores backing the authorization flow.

Everything that must survive between two HTTP requests (orchestration
state, CSRF markers, authorization codes, grants, provider credentials)
goes through a KeyValueStore. Values are strings (JSON); every entry may
carry a TTL, and an expired entry is indistinguishable from a missing one.
Expired entries that are never read again are swept on a later write.

Key namespaces:
- state:<token>                 one-time orchestration state
- csrf:<token>                  one-time CSRF marker
- code:<code> / grant:<id>      host token issuer
- user-providers::<identity>    credential records
"""

import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# Seconds between expiry sweeps triggered by put()
SWEEP_INTERVAL = 60


class KeyValueStore:
    """Minimal get/put/delete contract with optional per-key TTL."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store, used for development and tests."""

    def __init__(self, clock: Callable[[], float] = time.time, sweep_interval: int = SWEEP_INTERVAL):
        self._clock = clock
        self._entries: dict[str, dict] = {}
        self._sweep_interval = sweep_interval
        self._last_sweep = clock()

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry["expires_at"] is not None and self._clock() >= entry["expires_at"]:
            del self._entries[key]
            return None
        return entry["value"]

    def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        self._maybe_sweep()
        expires_at = self._clock() + ttl if ttl else None
        self._entries[key] = {"value": value, "expires_at": expires_at}

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def sweep(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        self._last_sweep = now
        expired = [
            key for key, entry in self._entries.items()
            if entry["expires_at"] is not None and now >= entry["expires_at"]
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"[STORE] Swept {len(expired)} expired entries")
        return len(expired)

    def _maybe_sweep(self) -> None:
        if self._clock() - self._last_sweep >= self._sweep_interval:
            self.sweep()

    def __len__(self) -> int:
        return len(self._entries)


class SupabaseKeyValueStore(KeyValueStore):
    """Durable store on a Supabase table.

    Expected schema:
        create table oauth_kv (
            key text primary key,
            value text not null,
            expires_at bigint
        );
        create index oauth_kv_expires_at on oauth_kv (expires_at);
    """

    def __init__(
        self,
        supabase_client,
        table: str = "oauth_kv",
        clock: Callable[[], float] = time.time,
        sweep_interval: int = SWEEP_INTERVAL,
    ):
        self.supabase = supabase_client
        self.table = table
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._last_sweep = clock()

    def get(self, key: str) -> Optional[str]:
        result = self.supabase.table(self.table).select("value, expires_at").eq("key", key).limit(1).execute()
        rows = result.data or []
        if not rows:
            return None
        row = rows[0]
        expires_at = row.get("expires_at")
        if expires_at is not None and self._clock() >= expires_at:
            self.delete(key)
            return None
        return row["value"]

    def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        self._maybe_sweep()
        expires_at = int(self._clock()) + ttl if ttl else None
        self.supabase.table(self.table).upsert(
            {"key": key, "value": value, "expires_at": expires_at}
        ).execute()

    def delete(self, key: str) -> None:
        self.supabase.table(self.table).delete().eq("key", key).execute()

    def sweep(self) -> None:
        """Delete every row whose expires_at has passed."""
        now = self._clock()
        self._last_sweep = now
        self.supabase.table(self.table).delete().lte("expires_at", int(now)).execute()

    def _maybe_sweep(self) -> None:
        if self._clock() - self._last_sweep < self._sweep_interval:
            return
        try:
            self.sweep()
        except Exception as e:
            # A failed sweep must not fail the write; the next interval retries
            logger.warning(f"[STORE] Expiry sweep failed: {e}")


def create_store(supabase_client=None) -> KeyValueStore:
    """Pick the durable Supabase store when configured, in-memory otherwise."""
    if supabase_client:
        logger.info("[STORE] Using Supabase key/value store")
        return SupabaseKeyValueStore(supabase_client)
    logger.warning("[STORE] Supabase not configured - using in-memory store (state lost on restart)")
    return InMemoryKeyValueStore()

"""Per-identity credential records.

One record per anchor identity under user-providers::<identity>, holding
every connected provider's credential. Writes are read-modify-write with
no cross-request locking: two concurrent "add a provider" flows for the
same user resolve last-write-wins per provider.
"""

import json
import logging
from typing import Optional

from authflow.models import CredentialBundle, IdentityAnchor, ProviderCredential
from authflow.stores import KeyValueStore

logger = logging.getLogger(__name__)


class CredentialStore:
    def __init__(self, kv: KeyValueStore, ttl: Optional[int] = None):
        self.kv = kv
        self.ttl = ttl

    @staticmethod
    def _key(identity: str) -> str:
        return f"user-providers::{identity}"

    def get(self, identity: str) -> Optional[CredentialBundle]:
        stored = self.kv.get(self._key(identity))
        if stored is None:
            return None
        try:
            return CredentialBundle.from_dict(json.loads(stored))
        except (ValueError, KeyError, TypeError):
            logger.error(f"[STORE] Unreadable credential record for {identity}")
            return None

    def put(self, identity: str, record: CredentialBundle, ttl: Optional[int] = None) -> None:
        self.kv.put(self._key(identity), json.dumps(record.to_dict()), ttl=ttl or self.ttl)

    def merge(
        self,
        anchor: IdentityAnchor,
        provider: str,
        credential: ProviderCredential,
        carried: Optional[CredentialBundle] = None,
    ) -> CredentialBundle:
        """Write one provider credential into the identity's record.

        The named provider is overwritten; providers only present in the
        carried bundle are filled in without replacing stored entries.
        """
        record = self.get(anchor.key) or CredentialBundle()
        record.anchor = anchor
        if carried is not None:
            for name, cred in carried.providers.items():
                record.providers.setdefault(name, cred)
            for name in carried.connected_integrations:
                if name not in record.connected_integrations:
                    record.connected_integrations.append(name)

        record.providers[provider] = credential
        if provider not in record.connected_integrations:
            record.connected_integrations.append(provider)

        self.put(anchor.key, record)
        logger.info(f"[STORE] Saved {provider} credential for {anchor.key}")
        return record

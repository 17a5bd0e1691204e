"""Identity anchoring and incremental credential merge.

Applied on every provider callback:
1. Start from the carried-over bundle, or an empty one with the
   placeholder anchor.
2. Exchange the code. For the deployment's anchor provider, also fetch
   the profile and overwrite the anchor with it.
3. A non-anchor provider with no prior anchor leaves the placeholder in
   place; callers decide whether that is acceptable.
4. The new credential replaces any entry for the same provider; every
   other provider entry is kept. Newest token wins, scopes are not
   reconciled.
"""

import logging
from typing import Optional

from authflow.credentials import CredentialStore
from authflow.exchange import TokenExchanger
from authflow.models import CredentialBundle, ProviderCredential
from authflow.providers import ProviderDescriptor

logger = logging.getLogger(__name__)


def merge_credential(bundle: CredentialBundle, provider: str, credential: ProviderCredential) -> CredentialBundle:
    """Return a copy of bundle with provider's credential set and listed once."""
    merged = CredentialBundle.from_dict(bundle.to_dict())
    merged.providers[provider] = credential
    if provider not in merged.connected_integrations:
        merged.connected_integrations.append(provider)
    return merged


class IdentityResolver:
    def __init__(self, exchanger: TokenExchanger, credentials: CredentialStore, anchor_provider: str):
        self.exchanger = exchanger
        self.credentials = credentials
        self.anchor_provider = anchor_provider

    def is_anchor(self, descriptor: ProviderDescriptor) -> bool:
        return descriptor.is_anchor and descriptor.name == self.anchor_provider

    async def resolve(
        self,
        descriptor: ProviderDescriptor,
        code: str,
        redirect_uri: str,
        carried: Optional[CredentialBundle] = None,
    ) -> CredentialBundle:
        bundle = CredentialBundle.from_dict(carried.to_dict()) if carried else CredentialBundle()

        credential = await self.exchanger.exchange(descriptor, code, redirect_uri)

        if self.is_anchor(descriptor):
            anchor = await self.exchanger.fetch_profile(descriptor, credential.access_token)
            if not bundle.anchor.is_placeholder and bundle.anchor.login != anchor.login:
                logger.warning(f"[IDENTITY] Anchor changed from {bundle.anchor.login} to {anchor.login}")
            bundle.anchor = anchor
            logger.info(f"[IDENTITY] Anchored session to {anchor.login}")
        elif bundle.anchor.is_placeholder:
            logger.info(f"[IDENTITY] {descriptor.name} connected without an anchor identity")

        return merge_credential(bundle, descriptor.name, credential)

    def fold_stored(self, bundle: CredentialBundle) -> CredentialBundle:
        """Add credentials stored for the anchor identity that the bundle lacks."""
        if bundle.anchor.is_placeholder:
            return bundle
        try:
            stored = self.credentials.get(bundle.anchor.key)
        except Exception as e:
            logger.warning(f"[STORE] Could not read stored credentials for {bundle.anchor.key}: {e}")
            return bundle
        if stored is None:
            return bundle

        folded = CredentialBundle.from_dict(bundle.to_dict())
        for name, cred in stored.providers.items():
            folded.providers.setdefault(name, cred)
        for name in stored.connected_integrations:
            if name not in folded.connected_integrations and name in folded.providers:
                folded.connected_integrations.append(name)
        return folded

    def remember(self, bundle: CredentialBundle, provider: str) -> bool:
        """Persist the just-obtained credential; failures never lose the bundle."""
        if bundle.anchor.is_placeholder:
            logger.info(f"[STORE] Not persisting {provider}: no anchor identity")
            return False
        try:
            self.credentials.merge(bundle.anchor, provider, bundle.providers[provider], carried=bundle)
        except Exception as e:
            logger.error(f"[STORE] Failed to save {provider} credential for {bundle.anchor.key}: {e}")
            return False
        return True

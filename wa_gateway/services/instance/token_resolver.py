# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Resolución y cache del token de sesión por tenant.
# ============================================================================
"""
Token Resolver/Cache.

Single Responsibility: Produce the bearer credential for a tenant's
non-administrative vendor calls.

Resolution order:
1. Explicit override
2. Token cached on the InstanceRecord (no network call)
3. Adapter scan of the vendor's session listings; a match is persisted
   to the ledger so the next call is a cache hit
4. Global fallback credential, when configured and allowed for the call
5. CredentialsMissingError
"""

import logging

from wa_gateway.integrations.providers.base import Capability, ProviderAdapter
from wa_gateway.integrations.providers.credentials import Credential, CredentialPolicy, CredentialSource
from wa_gateway.integrations.providers.exceptions import CredentialsMissingError, VendorError
from wa_gateway.models.instance import InstanceRecord

from .ledger import InstanceLedger

logger = logging.getLogger(__name__)


class TokenResolver:
    """Session token resolution with write-through caching into the ledger."""

    def __init__(self, adapter: ProviderAdapter, ledger: InstanceLedger, policy: CredentialPolicy) -> None:
        self._adapter = adapter
        self._ledger = ledger
        self._policy = policy

    async def resolve(
        self,
        record: InstanceRecord,
        *,
        override: str | None = None,
        allow_global_fallback: bool = True,
    ) -> Credential:
        """
        Resolve the credential for `record`'s session.

        Must be called inside `ledger.scope(record.tenant_id)`: a successful
        scan writes the token back to the ledger.

        Raises:
            CredentialsMissingError: Nothing resolved and fallback unavailable
        """
        if override:
            return Credential(override, CredentialSource.OVERRIDE)
        if record.session_token:
            return Credential(record.session_token, CredentialSource.SESSION)

        scanned = await self.scan(record)
        if scanned:
            return Credential(scanned, CredentialSource.SESSION)

        try:
            credential = self._policy.select(allow_global_fallback=allow_global_fallback)
        except CredentialsMissingError:
            raise CredentialsMissingError(
                f"No token for session '{record.session_name}' of tenant {record.tenant_id}. "
                "Bind the session with its token or create it through the gateway.",
                tenant_id=record.tenant_id,
                session_name=record.session_name,
            ) from None
        logger.warning(
            f"Tenant {record.tenant_id}: using global fallback credential for session '{record.session_name}'"
        )
        return credential

    async def scan(self, record: InstanceRecord) -> str | None:
        """
        Look the session up through the adapter and cache the token.

        Returns None when the adapter cannot resolve tokens, the record has
        no session name, or the vendor scan finds nothing.
        """
        if not record.is_linked or not self._adapter.supports(Capability.RESOLVE_SESSION_TOKEN):
            return None

        try:
            token = await self._adapter.resolve_session_token(record.session_name)
        except VendorError as e:
            logger.warning(f"Token scan for session '{record.session_name}' failed: {e}")
            return None

        if not token:
            return None

        updated = await self._ledger.update(record.tenant_id, session_token=token)
        record.session_token = updated.session_token
        logger.info(f"Tenant {record.tenant_id}: token for session '{record.session_name}' resolved and cached")
        return token

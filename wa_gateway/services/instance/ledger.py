# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Ledger de reconciliación: registro autoritativo de la instancia
#              de cada tenant, con exclusión mutua por tenant.
# ============================================================================
"""
Reconciliation Ledger.

Single Responsibility: Own every InstanceRecord and serialize access to it.

- One record per tenant, created lazily (seeded from the tenant directory
  when account management already knows a session).
- Reads and writes happen inside `scope(tenant_id)`, a per-tenant
  asyncio.Lock. Unrelated tenants never wait on each other. Locks live only
  while someone holds or awaits them, so unknown tenant ids leave nothing
  behind.
- `updated_at` strictly increases on every write.
- `session_token` is never cleared by an update; only `clear_token()` does.
- Writes of session name/token are mirrored to the tenant directory.
"""

import asyncio
import itertools
import logging
import weakref
from datetime import timedelta
from typing import Any

from wa_gateway.integrations.providers.credentials import mask_secret
from wa_gateway.models.instance import InstanceRecord, InstanceStatus, utc_now
from wa_gateway.repositories.instance_store import InstanceStore

from .tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("wa_gateway.audit")

_MIRRORED_FIELDS = ("session_name", "session_token")
_TICK = timedelta(microseconds=1)


class LedgerScopeError(RuntimeError):
    """A ledger write was attempted outside the tenant's exclusion scope."""


class InstanceLedger:
    """Authoritative store of per-tenant InstanceRecords."""

    def __init__(
        self,
        store: InstanceStore,
        provider: str,
        directory: TenantDirectory | None = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._directory = directory
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        self._observations = itertools.count(1)

    @property
    def provider(self) -> str:
        return self._provider

    def scope(self, tenant_id: str) -> asyncio.Lock:
        """Per-tenant exclusion scope (`async with ledger.scope(tid): ...`)."""
        tenant_id = str(tenant_id)
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tenant_id] = lock
        return lock

    @property
    def active_scopes(self) -> int:
        """Number of tenant scopes currently held or awaited."""
        return len(self._locks)

    def next_observation(self) -> int:
        """Next value of the local observation clock."""
        return next(self._observations)

    def _require_scope(self, tenant_id: str) -> None:
        if not self.scope(tenant_id).locked():
            raise LedgerScopeError(f"Ledger write for tenant {tenant_id} outside its exclusion scope")

    async def get(self, tenant_id: str) -> InstanceRecord | None:
        """
        Current record for a tenant.

        When the store has none but the tenant directory knows a session,
        a record is seeded from it (this write requires the tenant scope).
        """
        tenant_id = str(tenant_id)
        record = await self._store.get(tenant_id)
        if record is not None or self._directory is None:
            return record

        tenant = await self._directory.find_tenant(tenant_id)
        if tenant is None or not tenant.session_name:
            return None

        self._require_scope(tenant_id)
        record = InstanceRecord(
            tenant_id=tenant_id,
            provider=self._provider,
            session_name=tenant.session_name,
            session_token=tenant.session_token,
            status=InstanceStatus.CREATED,
        )
        await self._store.put(tenant_id, record)
        logger.info(f"Ledger record for tenant {tenant_id} seeded from directory (session={tenant.session_name})")
        return record

    async def update(self, tenant_id: str, **changes: Any) -> InstanceRecord:
        """
        Apply field changes and persist.

        Creates the record when missing. A `session_token=None` change is
        ignored; use clear_token() to drop a token.
        """
        tenant_id = str(tenant_id)
        self._require_scope(tenant_id)

        if changes.get("session_token") is None:
            changes.pop("session_token", None)

        current = await self._store.get(tenant_id)
        if current is None:
            record = InstanceRecord(tenant_id=tenant_id, provider=self._provider, **changes)
        else:
            record = current.model_copy(update=changes)
        return await self._write(current, record)

    async def clear_token(self, tenant_id: str) -> InstanceRecord | None:
        """Explicitly drop the cached session token (reset path)."""
        tenant_id = str(tenant_id)
        self._require_scope(tenant_id)
        current = await self._store.get(tenant_id)
        if current is None or not current.session_token:
            return current
        audit_logger.info(f"tenant={tenant_id} session={current.session_name} token cleared")
        return await self._write(current, current.model_copy(update={"session_token": None}))

    async def touch(self, tenant_id: str) -> InstanceRecord | None:
        """Advance `updated_at` without other changes."""
        tenant_id = str(tenant_id)
        self._require_scope(tenant_id)
        current = await self._store.get(tenant_id)
        if current is None:
            return None
        return await self._write(current, current.model_copy())

    async def _write(self, previous: InstanceRecord | None, record: InstanceRecord) -> InstanceRecord:
        now = utc_now()
        if previous is not None and now <= previous.updated_at:
            now = previous.updated_at + _TICK
        record.updated_at = now

        await self._store.put(record.tenant_id, record)
        await self._mirror(previous, record)
        return record

    async def _mirror(self, previous: InstanceRecord | None, record: InstanceRecord) -> None:
        changed = {
            name: getattr(record, name)
            for name in _MIRRORED_FIELDS
            if getattr(record, name) != (getattr(previous, name) if previous else None)
        }
        if not changed:
            return

        if "session_token" in changed:
            audit_logger.info(
                f"tenant={record.tenant_id} session={record.session_name} "
                f"token={mask_secret(record.session_token) or '-'}"
            )
        if "session_name" in changed:
            audit_logger.info(f"tenant={record.tenant_id} bound to session={record.session_name}")

        if self._directory is not None:
            await self._directory.update_tenant_session(record.tenant_id, changed)

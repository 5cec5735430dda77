# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Directorio de tenants (gestión de cuentas externa).
# ============================================================================
"""
Tenant directory.

Single Responsibility: Interface to the account-management collaborator.

The gateway consumes `find_tenant` and `update_tenant_session`, plus
`register_tenant` when a session is about to be created for an account the
directory does not know yet. Lookups never register anything.
The in-memory implementation backs development and tests.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class TenantProfile:
    """What the gateway needs to know about a tenant account."""

    id: str
    username: str
    session_name: str | None = None
    session_token: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class TenantDirectory(Protocol):
    """Account-management collaborator."""

    async def find_tenant(self, tenant_id: str) -> TenantProfile | None: ...

    async def register_tenant(self, tenant_id: str) -> TenantProfile | None: ...

    async def update_tenant_session(self, tenant_id: str, fields: dict[str, Any]) -> None: ...


class InMemoryTenantDirectory:
    """
    Process-local tenant directory.

    With `auto_register`, register_tenant() adds unknown tenant ids using the
    id as username; without it registration is refused.
    """

    def __init__(self, tenants: list[TenantProfile] | None = None, auto_register: bool = False) -> None:
        self._tenants: dict[str, TenantProfile] = {t.id: t for t in (tenants or [])}
        self._auto_register = auto_register

    def add(self, tenant: TenantProfile) -> None:
        self._tenants[tenant.id] = tenant

    def __len__(self) -> int:
        return len(self._tenants)

    async def find_tenant(self, tenant_id: str) -> TenantProfile | None:
        return self._tenants.get(str(tenant_id))

    async def register_tenant(self, tenant_id: str) -> TenantProfile | None:
        tenant_id = str(tenant_id)
        tenant = self._tenants.get(tenant_id)
        if tenant is not None or not self._auto_register:
            return tenant
        tenant = TenantProfile(id=tenant_id, username=tenant_id)
        self._tenants[tenant_id] = tenant
        logger.info(f"Tenant {tenant_id} auto-registered in directory")
        return tenant

    async def update_tenant_session(self, tenant_id: str, fields: dict[str, Any]) -> None:
        tenant_id = str(tenant_id)
        tenant = self._tenants.get(tenant_id)
        if tenant is None:
            logger.warning(f"Cannot update session of unknown tenant {tenant_id}")
            return
        allowed = {k: v for k, v in fields.items() if k in ("session_name", "session_token")}
        self._tenants[tenant_id] = replace(tenant, **allowed)


def derive_session_name(username: str | None, tenant_id: str) -> str:
    """
    Deterministic session name: `wa-<slug(username)>-<tenant_id>`.

    The slug is lowercased with every run of non [a-z0-9] characters
    collapsed to '-' and trimmed; an empty slug becomes 'user'.
    """
    slug = _NON_ALNUM.sub("-", (username or "").lower()).strip("-") or "user"
    return f"wa-{slug}-{tenant_id}"

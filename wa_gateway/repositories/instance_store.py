# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Almacenamiento clave-valor de InstanceRecord por tenant.
# ============================================================================
"""
Instance store.

Single Responsibility: Durable key-value storage of InstanceRecord keyed by
tenant id. No transactions or range queries; serialization of access is
the ledger's job.
"""

import logging
from typing import Protocol, runtime_checkable

from wa_gateway.config.settings import Settings
from wa_gateway.models.instance import InstanceRecord

from .async_redis_repository import AsyncRedisRepository

logger = logging.getLogger(__name__)


@runtime_checkable
class InstanceStore(Protocol):
    """Key-value contract the ledger persists through."""

    async def get(self, tenant_id: str) -> InstanceRecord | None: ...

    async def put(self, tenant_id: str, record: InstanceRecord) -> None: ...

    async def close(self) -> None: ...


class InMemoryInstanceStore:
    """Process-local store (development and tests)."""

    def __init__(self) -> None:
        self._records: dict[str, InstanceRecord] = {}

    async def get(self, tenant_id: str) -> InstanceRecord | None:
        record = self._records.get(str(tenant_id))
        return record.model_copy(deep=True) if record else None

    async def put(self, tenant_id: str, record: InstanceRecord) -> None:
        self._records[str(tenant_id)] = record.model_copy(deep=True)

    async def close(self) -> None:
        return None

    def __len__(self) -> int:
        return len(self._records)


class RedisInstanceStore:
    """Redis-backed store, one JSON document per tenant under `instances:<tenant_id>`."""

    PREFIX = "wa_gateway:instances"

    def __init__(self, repository: AsyncRedisRepository[InstanceRecord]) -> None:
        self._repository = repository

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisInstanceStore":
        return cls(AsyncRedisRepository[InstanceRecord](InstanceRecord, prefix=cls.PREFIX, settings=settings))

    async def connect(self) -> None:
        await self._repository.connect()

    async def get(self, tenant_id: str) -> InstanceRecord | None:
        return await self._repository.get(str(tenant_id))

    async def put(self, tenant_id: str, record: InstanceRecord) -> None:
        await self._repository.set(str(tenant_id), record)

    async def close(self) -> None:
        await self._repository.close()


def create_instance_store(settings: Settings) -> InstanceStore:
    """Build the store selected by `INSTANCE_STORE`."""
    if settings.INSTANCE_STORE == "redis":
        logger.info(f"Instance ledger backed by Redis at {settings.REDIS_HOST}:{settings.REDIS_PORT}")
        return RedisInstanceStore.from_settings(settings)
    if settings.INSTANCE_STORE != "memory":
        raise ValueError(f"Unknown INSTANCE_STORE '{settings.INSTANCE_STORE}'. Supported: memory, redis")
    logger.info("Instance ledger backed by in-memory store")
    return InMemoryInstanceStore()

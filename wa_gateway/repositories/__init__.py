from wa_gateway.repositories.async_redis_repository import AsyncRedisRepository
from wa_gateway.repositories.instance_store import (
    InMemoryInstanceStore,
    InstanceStore,
    RedisInstanceStore,
    create_instance_store,
)

__all__ = [
    "AsyncRedisRepository",
    "InMemoryInstanceStore",
    "InstanceStore",
    "RedisInstanceStore",
    "create_instance_store",
]

"""
Async Redis Repository

JSON documents for pydantic models on top of redis.asyncio. One document per
key, optionally namespaced with a prefix. Connection setup is retried; once
connected, Redis errors propagate to the caller.
"""

import json
import logging
from typing import Generic, TypeVar

import redis.asyncio as aioredis
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from wa_gateway.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class AsyncRedisRepository(Generic[ModelT]):
    """
    Pydantic documents in Redis.

    Example:
        repo = AsyncRedisRepository[InstanceRecord](InstanceRecord, prefix="wa_gateway:instances")
        await repo.connect()
        await repo.set("42", record)
    """

    def __init__(
        self,
        model_class: type[ModelT],
        prefix: str = "",
        settings: Settings | None = None,
        client: aioredis.Redis | None = None,
    ):
        self.settings = settings or get_settings()
        self.model_class = model_class
        self.prefix = prefix
        self._client = client

    def _build_client(self) -> aioredis.Redis:
        return aioredis.from_url(
            self.settings.redis_url,
            decode_responses=True,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
        )

    async def connect(self, max_attempts: int = 3, retry_delay: float = 1.0) -> None:
        """Open the connection and PING it, retrying connection failures."""
        if self._client is not None:
            return

        client = self._build_client()
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_fixed(retry_delay),
            retry=retry_if_exception_type((aioredis.ConnectionError, aioredis.TimeoutError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                await client.ping()

        self._client = client
        logger.info(f"Redis ready at {self.settings.REDIS_HOST}:{self.settings.REDIS_PORT} (prefix '{self.prefix}')")

    async def _redis(self) -> aioredis.Redis:
        if self._client is None:
            await self.connect()
        assert self._client is not None
        return self._client

    def key_for(self, key: str) -> str:
        return f"{self.prefix}:{key}" if self.prefix else key

    async def get(self, key: str) -> ModelT | None:
        """Load a document; missing or undecodable documents read as None."""
        redis = await self._redis()
        full_key = self.key_for(key)
        raw = await redis.get(full_key)
        if not raw:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")

        try:
            return self.model_class.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.error(f"Discarding unreadable {self.model_class.__name__} document at {full_key}: {e}")
            return None

    async def set(self, key: str, value: ModelT, expiration: int | None = None) -> None:
        redis = await self._redis()
        await redis.set(self.key_for(key), json.dumps(value.model_dump(mode="json")), ex=expiration)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            logger.info("Redis connection closed")
        self._client = None

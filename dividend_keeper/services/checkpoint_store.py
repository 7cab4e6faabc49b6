"""
Checkpoint stores: durable key -> string maps surviving between invocations.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Mapping, Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

import structlog

from dividend_keeper.core.config import settings
from dividend_keeper.core.exceptions import CheckpointError


logger = structlog.get_logger(__name__)


class CheckpointStore(ABC):
    """Key-value store holding the serialized checkpoint."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Get value by key, None when absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Set key to value."""

    async def get_many(self, keys: Iterable[str]) -> Dict[str, Optional[str]]:
        return {key: await self.get(key) for key in keys}

    async def set_many(self, values: Mapping[str, str]) -> None:
        """
        Write several keys.

        The base implementation writes one key at a time in the mapping's
        order; subclasses able to write atomically override it.
        """
        for key, value in values.items():
            await self.set(key, value)


class InMemoryCheckpointStore(CheckpointStore):
    """Process-local store for dry runs and tests."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value


class RedisCheckpointStore(CheckpointStore):
    """Async Redis checkpoint store with connection management."""

    def __init__(self, url: Optional[str] = None, prefix: Optional[str] = None):
        self.url = url or settings.redis_url
        self.prefix = prefix if prefix is not None else settings.redis_prefix
        self._client: Optional[Redis] = None
        self._pool: Optional[redis.ConnectionPool] = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def connect(self) -> None:
        """Establish Redis connection."""
        if self._client is not None:
            return
        try:
            self._pool = redis.ConnectionPool.from_url(
                self.url,
                decode_responses=True,
                max_connections=4,
                retry_on_timeout=True,
                socket_keepalive=True,
            )
            self._client = Redis(connection_pool=self._pool)

            # Test connection
            await self._client.ping()
            logger.info("Redis connection established", url=self.url, prefix=self.prefix)

        except RedisError as e:
            logger.error("Failed to connect to Redis", url=self.url, error=str(e))
            raise CheckpointError(f"Failed to connect to Redis: {e}", {"url": self.url})

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Redis connection closed")

    @property
    def client(self) -> Redis:
        if self._client is None:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.client.get(self._key(key))
        except RedisError as e:
            logger.error("Redis GET failed", key=key, error=str(e))
            raise CheckpointError(f"Failed to read checkpoint key {key}: {e}", {"key": key})

    async def set(self, key: str, value: str) -> None:
        try:
            await self.client.set(self._key(key), value)
        except RedisError as e:
            logger.error("Redis SET failed", key=key, error=str(e))
            raise CheckpointError(f"Failed to write checkpoint key {key}: {e}", {"key": key})

    async def get_many(self, keys: Iterable[str]) -> Dict[str, Optional[str]]:
        keys = list(keys)
        try:
            values = await self.client.mget([self._key(key) for key in keys])
        except RedisError as e:
            logger.error("Redis MGET failed", keys=keys, error=str(e))
            raise CheckpointError(f"Failed to read checkpoint: {e}", {"keys": keys})
        return dict(zip(keys, values))

    async def set_many(self, values: Mapping[str, str]) -> None:
        """Write all keys in one MULTI/EXEC transaction."""
        if not values:
            return
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                for key, value in values.items():
                    pipe.set(self._key(key), value)
                await pipe.execute()
        except RedisError as e:
            logger.error("Redis checkpoint transaction failed", keys=list(values), error=str(e))
            raise CheckpointError(f"Failed to write checkpoint: {e}", {"keys": list(values)})

import logging
import time
from typing import Callable, Protocol, runtime_checkable

from cachetools import TLRUCache
from redis.asyncio import Redis, RedisError

from app.core.config import Settings
from app.exceptions import CacheError

logger = logging.getLogger(__name__)


@runtime_checkable
class TaskCache(Protocol):
    """
    Key-value store for serialized task snapshots with per-entry expiry.

    Backends raise CacheError on failure; deciding what a failure means is
    left to the caller.
    """

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class RedisCache:
    """Task cache backed by a single Redis instance."""

    def __init__(self, redis: Redis):
        self._redis = redis

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisCache":
        redis = Redis.from_url(
            settings.redis_dsn,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis_pool_size,
            socket_connect_timeout=5,
            socket_timeout=settings.redis_socket_timeout,
            socket_keepalive=True,
            health_check_interval=30,
        )
        return cls(redis)

    async def get(self, key: str) -> str | None:
        try:
            raw = await self._redis.get(key)
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
        except (RedisError, UnicodeDecodeError) as e:
            raise CacheError(f"Redis GET failed for {key}") from e
        if raw is None:
            return None
        return str(raw)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._redis.set(key, value, ex=ttl_seconds)
        except RedisError as e:
            raise CacheError(f"Redis SET failed for {key}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as e:
            raise CacheError(f"Redis DELETE failed for {key}") from e

    async def ping(self) -> bool:
        """Verify connectivity. Returns False instead of raising."""
        try:
            await self._redis.ping()
        except RedisError as e:
            logger.error(f"Redis ping failed: {e}")
            return False
        return True

    async def close(self) -> None:
        """Graceful shutdown of cache connections."""
        try:
            await self._redis.aclose()
            logger.info("Redis connection closed")
        except RedisError as e:
            logger.error(f"Error closing Redis: {e}")


class MemoryCache:
    """
    Process-local task cache.

    Entries carry their own TTL (TLRUCache time-to-use), so the one-hour
    expiry of the Redis backend is honoured here too. Only suitable for a
    single worker; tests use it as the in-memory stand-in for Redis.
    """

    def __init__(self, maxsize: int = 2048, timer: Callable[[], float] = time.monotonic):
        self._entries = TLRUCache(maxsize=maxsize, ttu=self._expires_at, timer=timer)

    @staticmethod
    def _expires_at(_key, value, now):
        _payload, ttl_seconds = value
        return now + ttl_seconds

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return entry[0]

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._entries[key] = (value, ttl_seconds)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def build_cache(settings: Settings) -> TaskCache:
    """Create the configured cache backend."""
    if settings.cache_backend == "memory":
        logger.info("Using in-process task cache")
        return MemoryCache(maxsize=settings.memory_cache_maxsize)
    return RedisCache.from_settings(settings)

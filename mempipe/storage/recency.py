"""Recency cache with Redis and in-memory implementations.

A fixed-capacity FIFO of the most recently ingested memories. Both backends
evict oldest-first and return newest-first, so callers cannot tell them
apart apart from persistence across restarts.

Usage:
    cache = await create_recency_cache(settings)
    await cache.append(RecencyEntry(topic="t", content="c", date="2024-05-01"))
    latest = await cache.recent(5)
"""

import asyncio
from collections import deque
from typing import Optional, Protocol

import redis.asyncio as redis
import structlog

from mempipe.config.settings import Settings
from mempipe.models import RecencyEntry

logger = structlog.get_logger(__name__)


class RecencyCache(Protocol):
    """Protocol for recency cache implementations."""

    capacity: int

    async def append(self, entry: RecencyEntry) -> None: ...

    async def recent(self, limit: Optional[int] = None) -> list[RecencyEntry]: ...

    async def count(self) -> int: ...

    async def clear(self) -> None: ...

    async def close(self) -> None: ...


class InMemoryRecencyCache:
    """
    In-memory recency cache for development or Redis fallback.

    WARNING: Does not persist across restarts and does not share
    state between multiple application instances.
    """

    def __init__(self, capacity: int = 10) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: deque[RecencyEntry] = deque(maxlen=capacity)
        self._lock = asyncio.Lock()

    async def append(self, entry: RecencyEntry) -> None:
        async with self._lock:
            self._entries.append(entry)

    async def recent(self, limit: Optional[int] = None) -> list[RecencyEntry]:
        async with self._lock:
            newest_first = list(reversed(self._entries))
        return newest_first[:limit] if limit is not None else newest_first

    async def count(self) -> int:
        return len(self._entries)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    async def close(self) -> None:
        return None


class RedisRecencyCache:
    """
    Redis-backed recency cache shared across application instances.

    Entries are JSON strings in one list: RPUSH appends, LTRIM keeps the
    newest `capacity` items, so eviction is oldest-first.
    """

    def __init__(
        self,
        redis_url: str,
        capacity: int = 10,
        key: str = "mempipe:recency",
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._redis_url = redis_url
        self._key = key
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        if self._client is not None:
            return
        client = redis.from_url(
            self._redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        try:
            await client.ping()
        except Exception:
            await client.aclose()
            raise
        self._client = client
        logger.info("redis_recency_cache_connected", key=self._key)

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RuntimeError("Redis recency cache not connected. Call connect() first.")
        return self._client

    async def append(self, entry: RecencyEntry) -> None:
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.rpush(self._key, entry.model_dump_json())
            pipe.ltrim(self._key, -self.capacity, -1)
            await pipe.execute()

    async def recent(self, limit: Optional[int] = None) -> list[RecencyEntry]:
        raw = await self.client.lrange(self._key, 0, -1)
        entries = [RecencyEntry.model_validate_json(item) for item in reversed(raw)]
        return entries[:limit] if limit is not None else entries

    async def count(self) -> int:
        return int(await self.client.llen(self._key))

    async def clear(self) -> None:
        await self.client.delete(self._key)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("redis_recency_cache_closed")


async def create_recency_cache(settings: Settings) -> RecencyCache:
    """
    Build the recency cache for the configured backend.

    Attempts to use Redis if configured, falls back to in-memory.
    """
    if settings.redis_url:
        cache = RedisRecencyCache(
            redis_url=settings.redis_url,
            capacity=settings.recency_capacity,
        )
        try:
            await cache.connect()
            logger.info("recency_cache_initialized", backend="redis", capacity=cache.capacity)
            return cache
        except Exception as e:
            logger.warning(
                "redis_recency_cache_failed_fallback_to_memory",
                error=str(e),
            )

    cache = InMemoryRecencyCache(capacity=settings.recency_capacity)
    logger.info("recency_cache_initialized", backend="in_memory", capacity=cache.capacity)
    return cache

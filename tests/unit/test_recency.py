"""Unit tests for recency cache implementations."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from mempipe.models import RecencyEntry
from mempipe.storage.recency import (
    InMemoryRecencyCache,
    RedisRecencyCache,
    create_recency_cache,
)


def entry(i: int) -> RecencyEntry:
    return RecencyEntry(topic=f"Topic {i}", content=f"Content {i}", date="2024-05-01")


class TestInMemoryRecencyCache:
    """Test in-memory recency cache."""

    @pytest.mark.asyncio
    async def test_returns_newest_first(self):
        cache = InMemoryRecencyCache(capacity=5)
        for i in range(3):
            await cache.append(entry(i))

        recent = await cache.recent()

        assert [e.topic for e in recent] == ["Topic 2", "Topic 1", "Topic 0"]

    @pytest.mark.asyncio
    async def test_evicts_oldest_beyond_capacity(self):
        cache = InMemoryRecencyCache(capacity=10)
        for i in range(11):
            await cache.append(entry(i))

        recent = await cache.recent()

        assert await cache.count() == 10
        assert recent[0].topic == "Topic 10"
        assert "Topic 0" not in [e.topic for e in recent]

    @pytest.mark.asyncio
    async def test_limit(self):
        cache = InMemoryRecencyCache(capacity=5)
        for i in range(5):
            await cache.append(entry(i))

        assert [e.topic for e in await cache.recent(2)] == ["Topic 4", "Topic 3"]

    @pytest.mark.asyncio
    async def test_clear(self):
        cache = InMemoryRecencyCache()
        await cache.append(entry(1))

        await cache.clear()

        assert await cache.recent() == []

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            InMemoryRecencyCache(capacity=0)


class TestRecencyCacheFactory:
    """Test recency cache factory function."""

    @pytest.mark.asyncio
    async def test_returns_in_memory_when_no_redis(self):
        """Returns in-memory cache when Redis not configured."""
        mock_settings = MagicMock()
        mock_settings.redis_url = None
        mock_settings.recency_capacity = 7

        cache = await create_recency_cache(mock_settings)

        assert isinstance(cache, InMemoryRecencyCache)
        assert cache.capacity == 7

    @pytest.mark.asyncio
    async def test_falls_back_when_redis_unreachable(self):
        mock_settings = MagicMock()
        mock_settings.redis_url = "redis://localhost:6379"
        mock_settings.recency_capacity = 10

        with patch.object(
            RedisRecencyCache, "connect", AsyncMock(side_effect=ConnectionError("refused"))
        ):
            cache = await create_recency_cache(mock_settings)

        assert isinstance(cache, InMemoryRecencyCache)

    @pytest.mark.asyncio
    async def test_uses_redis_when_reachable(self):
        mock_settings = MagicMock()
        mock_settings.redis_url = "redis://localhost:6379"
        mock_settings.recency_capacity = 10

        with patch.object(RedisRecencyCache, "connect", AsyncMock()):
            cache = await create_recency_cache(mock_settings)

        assert isinstance(cache, RedisRecencyCache)


class TestRedisRecencyCache:
    """Test Redis commands issued by the cache."""

    @pytest.mark.asyncio
    async def test_recent_reverses_list(self):
        cache = RedisRecencyCache("redis://localhost:6379", capacity=3)
        client = MagicMock()
        client.lrange = AsyncMock(
            return_value=[entry(1).model_dump_json(), entry(2).model_dump_json()]
        )
        cache._client = client

        recent = await cache.recent()

        assert [e.topic for e in recent] == ["Topic 2", "Topic 1"]
        client.lrange.assert_awaited_once_with("mempipe:recency", 0, -1)

    @pytest.mark.asyncio
    async def test_append_trims_to_capacity(self):
        cache = RedisRecencyCache("redis://localhost:6379", capacity=3)
        pipe = MagicMock()
        pipe.execute = AsyncMock()
        pipe.__aenter__ = AsyncMock(return_value=pipe)
        pipe.__aexit__ = AsyncMock(return_value=False)
        client = MagicMock()
        client.pipeline.return_value = pipe
        cache._client = client

        await cache.append(entry(1))

        pipe.rpush.assert_called_once_with("mempipe:recency", entry(1).model_dump_json())
        pipe.ltrim.assert_called_once_with("mempipe:recency", -3, -1)
        pipe.execute.assert_awaited_once()

"""Unit tests for the SQLite record store."""

import pytest

from mempipe.core.exceptions import StoreUnavailable
from mempipe.storage.base import RecordStore
from mempipe.storage.sqlite_store import SQLiteRecordStore


class TestSQLiteRecordStore:
    """Test canonical record persistence on SQLite."""

    def test_satisfies_record_store_protocol(self, tmp_path):
        assert isinstance(SQLiteRecordStore(str(tmp_path / "m.db")), RecordStore)

    @pytest.mark.asyncio
    async def test_insert_and_get(self, record_store):
        memory_id = await record_store.insert("projekte", "Topic", "Content", "2024-05-01")

        record = await record_store.get(memory_id)

        assert record is not None
        assert record.id == memory_id
        assert record.category == "projekte"
        assert record.date == "2024-05-01"
        assert record.created_at is not None

    @pytest.mark.asyncio
    async def test_insert_keeps_given_created_at(self, record_store):
        received_at = "2024-05-01T08:30:00+00:00"

        memory_id = await record_store.insert(
            "projekte", "Topic", "Content", "2024-05-01", created_at=received_at
        )

        assert (await record_store.get(memory_id)).created_at == received_at

    @pytest.mark.asyncio
    async def test_get_accepts_string_id(self, record_store):
        memory_id = await record_store.insert("projekte", "Topic", "Content", "2024-05-01")

        assert (await record_store.get(str(memory_id))).id == memory_id

    @pytest.mark.asyncio
    async def test_get_missing_or_invalid_id(self, record_store):
        assert await record_store.get(12345) is None
        assert await record_store.get("not-a-number") is None

    @pytest.mark.asyncio
    async def test_delete_twice(self, record_store):
        memory_id = await record_store.insert("projekte", "Topic", "Content", "2024-05-01")

        assert await record_store.delete(memory_id) is True
        assert await record_store.delete(memory_id) is False

    @pytest.mark.asyncio
    async def test_move(self, record_store):
        memory_id = await record_store.insert("projekte", "Topic", "Content", "2024-05-01")

        assert await record_store.move(memory_id, "debugging") is True
        assert (await record_store.get(memory_id)).category == "debugging"
        assert await record_store.move(99999, "debugging") is False

    @pytest.mark.asyncio
    async def test_search_basic_matches_topic_and_content(self, record_store):
        await record_store.insert("projekte", "Neo4j migration", "Graph work", "2024-05-01")
        await record_store.insert("humor", "Joke", "A pun about neo4j", "2024-05-02")
        await record_store.insert("humor", "Other", "Unrelated", "2024-05-03")

        results = await record_store.search_basic("neo4j")

        assert {r.topic for r in results} == {"Neo4j migration", "Joke"}

    @pytest.mark.asyncio
    async def test_search_basic_filters_categories(self, record_store):
        await record_store.insert("projekte", "Neo4j migration", "Graph work", "2024-05-01")
        await record_store.insert("humor", "Joke", "A pun about neo4j", "2024-05-02")

        results = await record_store.search_basic("neo4j", ["humor"])

        assert [r.category for r in results] == ["humor"]

    @pytest.mark.asyncio
    async def test_search_by_category_newest_first(self, record_store):
        first = await record_store.insert("projekte", "First", "c", "2024-05-01")
        second = await record_store.insert("projekte", "Second", "c", "2024-05-02")

        results = await record_store.search_by_category("projekte", limit=20)

        assert [r.id for r in results] == [second, first]

    @pytest.mark.asyncio
    async def test_list_categories(self, record_store):
        await record_store.insert("projekte", "a", "c", "2024-05-01")
        await record_store.insert("projekte", "b", "c", "2024-05-01")
        await record_store.insert("humor", "c", "c", "2024-05-01")

        assert await record_store.list_categories() == {"projekte": 2, "humor": 1}

    @pytest.mark.asyncio
    async def test_health_check(self, record_store):
        assert await record_store.health_check() is True

    @pytest.mark.asyncio
    async def test_unconnected_store_is_unavailable(self, tmp_path):
        store = SQLiteRecordStore(str(tmp_path / "m.db"))

        with pytest.raises(StoreUnavailable):
            await store.insert("projekte", "t", "c", "2024-05-01")

    @pytest.mark.asyncio
    async def test_unopenable_path_is_unavailable(self, tmp_path):
        store = SQLiteRecordStore(str(tmp_path / "missing" / "dir" / "m.db"))

        with pytest.raises(StoreUnavailable):
            await store.connect()

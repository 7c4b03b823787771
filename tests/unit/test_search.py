"""Unit tests for intelligent search."""

from datetime import date

import pytest
from unittest.mock import AsyncMock

from mempipe.models import CanonicalMemoryRecord, GraphNode
from mempipe.pipeline.search import MemorySearch


def record(memory_id: int, topic: str, content: str, day: str = "2024-05-01"):
    return CanonicalMemoryRecord(
        id=memory_id, category="projekte", topic=topic, content=content, date=day
    )


def concept_match(memory_id: int, distance: float = 0.2, topic: str = "Concept topic"):
    return {
        "id": f"memory_{memory_id}_concept_1",
        "document": "Concept description",
        "metadata": {
            "source_memory_id": str(memory_id),
            "source_category": "projekte",
            "source_topic": topic,
            "source_date": "2024-05-01",
            "concept_title": "Concept",
        },
        "distance": distance,
    }


class TestMerge:
    """Test merging of record and concept hits."""

    def test_sources(self):
        hits = MemorySearch.merge(
            [record(1, "Graph", "neo4j"), record(2, "Other", "text")],
            [concept_match(1, 0.1), concept_match(3, 0.4)],
        )

        by_id = {h["memory_id"]: h for h in hits}
        assert by_id["1"]["source"] == "both"
        assert by_id["1"]["similarity"] == pytest.approx(0.9)
        assert by_id["2"]["source"] == "record"
        assert by_id["3"]["source"] == "concept"
        assert by_id["3"]["topic"] == "Concept topic"


class TestRerank:
    """Test text and hybrid scoring."""

    @pytest.fixture
    def search(self):
        return MemorySearch(AsyncMock())

    def test_topic_matches_outrank_content_matches(self, search):
        hits = MemorySearch.merge(
            [record(1, "Other", "about neo4j"), record(2, "Neo4j notes", "other")], []
        )

        ranked = search.rerank(hits, "neo4j", strategy="text")

        assert [h["memory_id"] for h in ranked] == ["2", "1"]
        assert ranked[0]["score"] == 3.0
        assert ranked[1]["score"] == 1.0

    def test_hybrid_boosts_recent_and_penalizes_position(self, search):
        hits = MemorySearch.merge(
            [
                record(1, "neo4j", "x", day="2024-01-01"),
                record(2, "neo4j", "x", day="2024-05-20"),
            ],
            [],
        )

        ranked = search.rerank(hits, "neo4j", strategy="hybrid", today=date(2024, 6, 1))

        # 3.0 - 0.1 * 1 + 0.5 beats 3.0 - 0.0
        assert [h["memory_id"] for h in ranked] == ["2", "1"]
        assert ranked[0]["score"] == pytest.approx(3.4)


class TestSearch:
    """Test the concurrent search flow."""

    @pytest.mark.asyncio
    async def test_concept_failure_degrades_to_records(self):
        record_store = AsyncMock()
        record_store.search_basic.return_value = [record(1, "neo4j", "x")]
        concept_store = AsyncMock()
        concept_store.query.side_effect = RuntimeError("pinecone down")

        hits = await MemorySearch(record_store, concept_store).search("neo4j")

        assert [h["memory_id"] for h in hits] == ["1"]
        assert hits[0]["source"] == "record"

    @pytest.mark.asyncio
    async def test_category_filter_is_forwarded(self):
        record_store = AsyncMock()
        record_store.search_basic.return_value = []
        concept_store = AsyncMock()
        concept_store.query.return_value = [concept_match(5)]

        hits = await MemorySearch(record_store, concept_store).search(
            "neo4j", categories=["projekte"], rerank=False
        )

        assert hits[0]["source"] == "concept"
        record_store.search_basic.assert_awaited_once_with("neo4j", ["projekte"])
        concept_store.query.assert_awaited_once_with(
            "neo4j", k=10, filter={"source_category": {"$in": ["projekte"]}}
        )

    @pytest.mark.asyncio
    async def test_without_concept_store(self):
        record_store = AsyncMock()
        record_store.search_basic.return_value = [record(1, "neo4j", "x")]

        hits = await MemorySearch(record_store).search("neo4j")

        assert len(hits) == 1


class TestModelRerank:
    """Test the "llm" strategy."""

    @pytest.mark.asyncio
    async def test_scores_come_from_reranker(self):
        record_store = AsyncMock()
        record_store.search_basic.return_value = [
            record(1, "neo4j", "first"),
            record(2, "neo4j", "second"),
        ]
        reranker = AsyncMock()
        reranker.rerank.return_value = [{"index": 1, "score": 0.9}, {"index": 0, "score": 0.2}]

        hits = await MemorySearch(record_store, reranker=reranker).search("neo4j", strategy="llm")

        assert [h["memory_id"] for h in hits] == ["2", "1"]
        assert hits[0]["score"] == 0.9
        reranker.rerank.assert_awaited_once_with("neo4j", ["neo4j\nfirst", "neo4j\nsecond"])

    @pytest.mark.asyncio
    async def test_falls_back_to_text_without_reranker(self):
        record_store = AsyncMock()
        record_store.search_basic.return_value = [record(1, "neo4j", "x")]

        hits = await MemorySearch(record_store).search("neo4j", strategy="llm")

        assert hits[0]["score"] == 3.0

    @pytest.mark.asyncio
    async def test_falls_back_to_text_when_reranker_fails(self):
        record_store = AsyncMock()
        record_store.search_basic.return_value = [record(1, "neo4j", "x")]
        reranker = AsyncMock()
        reranker.rerank.side_effect = RuntimeError("cohere down")

        hits = await MemorySearch(record_store, reranker=reranker).search(
            "neo4j", strategy="llm"
        )

        assert hits[0]["score"] == 3.0


def related_item(memory_id: int, category: str = "projekte", types=("CONCEPT_SHARED",)):
    return {
        "node": {
            "id": str(memory_id),
            "category": category,
            "topic": f"Related {memory_id}",
            "content": "Linked content",
            "date": "2024-05-01",
        },
        "distance": 1,
        "relationship_types": list(types),
    }


class TestGraphSearch:
    """Test graph-enhanced search."""

    @pytest.fixture
    def record_store(self):
        store = AsyncMock()
        store.search_basic.return_value = [record(1, "neo4j", "x")]
        return store

    @pytest.mark.asyncio
    async def test_expands_through_relationships(self, record_store):
        graph_store = AsyncMock()
        graph_store.search_by_content.return_value = []
        graph_store.find_related.return_value = [related_item(7)]

        result = await MemorySearch(record_store, graph_store=graph_store).search_with_graph(
            "neo4j", max_depth=3
        )

        by_id = {h["memory_id"]: h for h in result["results"]}
        assert by_id["7"]["source"] == "related"
        assert by_id["1"]["connections"] == 1
        # 3.0 text score plus one connection
        assert by_id["1"]["score"] == 3.5
        assert result["related_memories"] == 1
        assert result["relationship_depth"] == 3
        assert result["relationships"] == [
            {
                "from_id": "1",
                "to_id": "7",
                "distance": 1,
                "relationship_types": ["CONCEPT_SHARED"],
            }
        ]
        graph_store.find_related.assert_awaited_once_with("1", None, 3)

    @pytest.mark.asyncio
    async def test_graph_matches_are_merged(self, record_store):
        graph_store = AsyncMock()
        graph_store.search_by_content.return_value = [
            GraphNode(id="1", category="projekte", topic="neo4j", content="x", date="2024-05-01"),
            GraphNode(id="9", category="humor", topic="Pun", content="neo4j", date="2024-05-01"),
        ]
        graph_store.find_related.return_value = []

        result = await MemorySearch(record_store, graph_store=graph_store).search_with_graph(
            "neo4j", include_related=False
        )

        sources = {h["memory_id"]: h["source"] for h in result["results"]}
        assert sources == {"1": "record", "9": "graph"}
        assert result["sources"] == {"records": 1, "concepts": 0, "graph": 2}
        graph_store.find_related.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_category_filter_applies_to_graph_hits(self, record_store):
        graph_store = AsyncMock()
        graph_store.search_by_content.return_value = [
            GraphNode(id="9", category="humor", topic="Pun", content="neo4j", date="2024-05-01"),
        ]
        graph_store.find_related.return_value = [related_item(8, category="humor")]

        result = await MemorySearch(record_store, graph_store=graph_store).search_with_graph(
            "neo4j", categories=["projekte"]
        )

        assert [h["memory_id"] for h in result["results"]] == ["1"]
        assert result["relationships"] == []

    @pytest.mark.asyncio
    async def test_graph_outage_degrades_to_merged_results(self, record_store):
        graph_store = AsyncMock()
        graph_store.search_by_content.side_effect = ConnectionError("neo4j down")
        graph_store.find_related.side_effect = ConnectionError("neo4j down")

        result = await MemorySearch(record_store, graph_store=graph_store).search_with_graph(
            "neo4j"
        )

        assert [h["memory_id"] for h in result["results"]] == ["1"]
        assert result["relationships"] == []
        assert result["sources"]["graph"] == 0

    @pytest.mark.asyncio
    async def test_without_graph_store(self, record_store):
        result = await MemorySearch(record_store).search_with_graph("neo4j")

        assert [h["memory_id"] for h in result["results"]] == ["1"]
        assert result["related_memories"] == 0


class TestAdvancedRetrieval:
    """Test single-memory retrieval with enrichment."""

    @pytest.mark.asyncio
    async def test_missing_memory(self):
        record_store = AsyncMock()
        record_store.get.return_value = None

        assert await MemorySearch(record_store).retrieve_advanced(5) is None

    @pytest.mark.asyncio
    async def test_collects_every_section(self):
        records = {"1": record(1, "Graph", "neo4j"), "2": record(2, "Other", "neo4j too")}
        record_store = AsyncMock()
        record_store.get.side_effect = lambda memory_id: records.get(str(memory_id))
        concept_store = AsyncMock()
        concept_store.query.side_effect = [
            [concept_match(1, 0.1)],
            [concept_match(1, 0.1), concept_match(2, 0.3), concept_match(2, 0.5)],
        ]
        graph_store = AsyncMock()
        graph_store.find_by_id.return_value = GraphNode(
            id="1", category="projekte", topic="Graph", content="neo4j", date="2024-05-01"
        )
        graph_store.find_related.return_value = [related_item(2)]

        detail = await MemorySearch(record_store, concept_store, graph_store).retrieve_advanced(1)

        assert detail["memory"].id == 1
        assert detail["in_graph"] is True
        assert [c["id"] for c in detail["concepts"]] == ["memory_1_concept_1"]
        assert detail["related_memories"] == [related_item(2)]
        assert detail["similar_memories"] == [
            {
                "memory_id": "2",
                "category": "projekte",
                "topic": "Other",
                "content": "neo4j too",
                "date": "2024-05-01",
                "relevance": 0.7,
                "matched_concepts": 2,
            }
        ]
        first_call = concept_store.query.await_args_list[0]
        assert first_call.kwargs["filter"] == {"source_memory_id": {"$eq": "1"}}

    @pytest.mark.asyncio
    async def test_enrichment_failures_leave_sections_empty(self):
        record_store = AsyncMock()
        record_store.get.return_value = record(1, "Graph", "neo4j")
        concept_store = AsyncMock()
        concept_store.query.side_effect = RuntimeError("pinecone down")
        graph_store = AsyncMock()
        graph_store.find_by_id.side_effect = ConnectionError("neo4j down")
        graph_store.find_related.side_effect = ConnectionError("neo4j down")

        detail = await MemorySearch(record_store, concept_store, graph_store).retrieve_advanced(1)

        assert detail["memory"].id == 1
        assert detail["in_graph"] is False
        assert detail["concepts"] == []
        assert detail["related_memories"] == []
        assert detail["similar_memories"] == []

"""Unit tests for the relationship builder."""

import pytest
from unittest.mock import AsyncMock

from mempipe.knowledge.relationships import RelationshipBuilder, classify_edge, overlap_score
from mempipe.models import CanonicalMemoryRecord, ForceRelationship, GraphNode, SemanticAnalysis


def make_record(memory_id: int, topic: str = "Topic", category: str = "projekte"):
    return CanonicalMemoryRecord(
        id=memory_id,
        category=category,
        topic=topic,
        content=f"Content of memory {memory_id}",
        date="2024-05-01",
    )


def make_analysis(concepts: list[str], keywords: list[str] | None = None) -> SemanticAnalysis:
    return SemanticAnalysis(
        memory_type="projekte",
        confidence=0.9,
        extracted_concepts=concepts,
        keywords=keywords or [],
    )


def make_node(node_id: str, concepts: list[str], topic: str = "Topic", category: str = "projekte"):
    return GraphNode(
        id=node_id,
        category=category,
        topic=topic,
        content="c",
        date="2024-05-01",
        concepts=concepts,
    )


class TestOverlapAndClassification:
    """Test overlap scoring and edge typing."""

    def test_overlap_score_is_jaccard(self):
        assert overlap_score({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)
        assert overlap_score(set(), {"a"}) == 0.0

    def test_same_topic_wins(self):
        node = make_node("1", ["x"], topic="Weekly Sync")
        other = make_node("2", ["x"], topic="weekly sync ")

        assert classify_edge(node, other) == "SAME_TOPIC"

    def test_shared_concept(self):
        assert classify_edge(make_node("1", ["x"], "A"), make_node("2", ["x"], "B")) == "CONCEPT_SHARED"

    def test_same_category(self):
        assert classify_edge(make_node("1", ["x"], "A"), make_node("2", ["y"], "B")) == "SAME_CATEGORY"

    def test_related_to(self):
        node = make_node("1", ["x"], "A", "projekte")
        other = make_node("2", ["y"], "B", "humor")

        assert classify_edge(node, other) == "RELATED_TO"


class TestRelationshipBuilder:
    """Test node creation and derived edges."""

    @pytest.mark.asyncio
    async def test_shared_concepts_create_edge(self, graph_store):
        builder = RelationshipBuilder(graph_store)
        await builder.link(make_record(1, "First"), make_analysis(["graph database", "neo4j"]))

        result = await builder.link(make_record(2, "Second"), make_analysis(["graph database"]))

        assert result.stored_in_graph is True
        assert result.relationships_created >= 1
        assert ("2", "1", "CONCEPT_SHARED") in [e[:3] for e in graph_store.edges]

    @pytest.mark.asyncio
    async def test_disjoint_concepts_create_no_edge(self, graph_store):
        builder = RelationshipBuilder(graph_store)
        await builder.link(make_record(1), make_analysis(["graph database"]))

        result = await builder.link(make_record(2), make_analysis(["gardening"]))

        assert result.stored_in_graph is True
        assert result.relationships_created == 0
        assert graph_store.edges == []

    @pytest.mark.asyncio
    async def test_overlap_below_threshold_is_ignored(self, graph_store):
        builder = RelationshipBuilder(graph_store, similarity_threshold=0.5)
        await builder.link(make_record(1), make_analysis(["a", "b", "c"]))

        result = await builder.link(make_record(2), make_analysis(["a", "d", "e"]))

        assert result.relationships_created == 0

    @pytest.mark.asyncio
    async def test_forced_relationship(self, graph_store):
        builder = RelationshipBuilder(graph_store)
        await builder.link(make_record(1), make_analysis([]))

        result = await builder.link(
            make_record(2),
            make_analysis([]),
            [ForceRelationship(target_memory_id=1, relationship_type="SIMILAR_TO")],
        )

        assert result.relationships_created == 1
        from_id, to_id, rel_type, properties = graph_store.edges[0]
        assert (from_id, to_id, rel_type) == ("2", "1", "SIMILAR_TO")
        assert properties["forced"] is True

    @pytest.mark.asyncio
    async def test_missing_target_is_reported(self, graph_store):
        builder = RelationshipBuilder(graph_store)

        result = await builder.link(
            make_record(2),
            make_analysis([]),
            [ForceRelationship(target_memory_id=999)],
        )

        assert result.stored_in_graph is True
        assert result.relationships_created == 0
        assert len(result.errors) == 1
        assert "999" in result.errors[0]

    @pytest.mark.asyncio
    async def test_node_failure_returns_failed_result(self):
        graph = AsyncMock()
        graph.create_node.side_effect = RuntimeError("neo4j down")

        result = await RelationshipBuilder(graph).link(make_record(1), make_analysis(["x"]))

        assert result.stored_in_graph is False
        assert result.relationships_created == 0
        assert "neo4j down" in result.errors[0]
        graph.find_candidates.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_embedding_failure_still_links(self, graph_store):
        embedder = AsyncMock()
        embedder.embed_text.side_effect = RuntimeError("cohere down")

        result = await RelationshipBuilder(graph_store, embedder=embedder).link(
            make_record(1), make_analysis(["x"])
        )

        assert result.stored_in_graph is True
        assert graph_store.nodes["1"].embedding is None

    @pytest.mark.asyncio
    async def test_remove_and_update_category(self, graph_store):
        builder = RelationshipBuilder(graph_store)
        await builder.link(make_record(1), make_analysis(["x"]))

        assert await builder.update_category(1, "debugging") is True
        assert graph_store.nodes["1"].category == "debugging"
        assert await builder.remove(1) is True
        assert await builder.remove(1) is False

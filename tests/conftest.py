"""
Pytest Configuration and Shared Fixtures.

This module provides common fixtures for all tests:

- settings: Settings with every enrichment backend unconfigured
- record_store: Connected SQLite store on a temporary file
- concept_store / graph_store: In-memory stand-ins for Pinecone and Neo4j
- analysis_payload: LLM payload that passes the significance gate
- analysis_backend: AsyncMock LLM backend returning analysis_payload
- pipeline: MemoryPipeline wired to all of the above
"""

from typing import Any, Optional
from unittest.mock import AsyncMock

import pytest

from mempipe.config.settings import Settings
from mempipe.core.circuit_breaker import CircuitBreaker, reset_all_circuit_breakers
from mempipe.core.exceptions import KnowledgeStoreQueryError
from mempipe.knowledge.concept_index import ConceptIndexWriter
from mempipe.knowledge.relationships import RelationshipBuilder
from mempipe.models import GraphNode
from mempipe.pipeline.analyzer import SemanticAnalyzer
from mempipe.pipeline.gate import IngestionGate
from mempipe.pipeline.orchestrator import MemoryPipeline
from mempipe.pipeline.router import CategoryRouter
from mempipe.pipeline.significance import SignificanceEvaluator
from mempipe.storage.recency import InMemoryRecencyCache
from mempipe.storage.sqlite_store import SQLiteRecordStore


def _matches_filter(metadata: dict[str, Any], metadata_filter: Optional[dict[str, Any]]) -> bool:
    """Evaluate the $eq and $in subset of Pinecone's metadata filter."""
    for key, condition in (metadata_filter or {}).items():
        value = metadata.get(key)
        if "$eq" in condition and value != condition["$eq"]:
            return False
        if "$in" in condition and value not in condition["$in"]:
            return False
    return True


class InMemoryConceptStore:
    """Concept store keeping entries in a dict; ids in fail_ids raise on add."""

    def __init__(self) -> None:
        self.entries: dict[str, tuple[str, dict[str, Any]]] = {}
        self.fail_ids: set[str] = set()

    async def add(
        self,
        ids: list[str],
        documents: list[str],
        metadatas: list[dict[str, Any]],
    ) -> None:
        for entry_id, document, metadata in zip(ids, documents, metadatas):
            if entry_id in self.fail_ids:
                raise KnowledgeStoreQueryError(f"upsert rejected for {entry_id}")
            self.entries[entry_id] = (document, metadata)

    async def query(
        self,
        text: str,
        k: int = 10,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        terms = text.lower().split()
        matches = []
        for entry_id, (document, metadata) in self.entries.items():
            if not _matches_filter(metadata, filter):
                continue
            if any(t in document.lower() for t in terms):
                matches.append(
                    {"id": entry_id, "document": document, "metadata": metadata, "distance": 0.2}
                )
        return matches[:k]

    async def count(self) -> int:
        return len(self.entries)


class InMemoryGraphStore:
    """Graph store keeping nodes and edges in memory."""

    def __init__(self) -> None:
        self.nodes: dict[str, GraphNode] = {}
        self.edges: list[tuple[str, str, str, dict[str, Any]]] = []

    async def create_node(self, node: GraphNode) -> None:
        self.nodes[node.id] = node

    async def create_edge(
        self,
        from_id: str,
        to_id: str,
        type: str,
        properties: Optional[dict[str, Any]] = None,
    ) -> bool:
        if from_id not in self.nodes or to_id not in self.nodes:
            return False
        self.edges.append((from_id, to_id, type, properties or {}))
        return True

    async def find_by_id(self, node_id: str) -> Optional[GraphNode]:
        return self.nodes.get(node_id)

    async def find_candidates(self, node_id: str, terms: list[str], limit: int) -> list[GraphNode]:
        wanted = set(terms)
        return [
            node
            for node in self.nodes.values()
            if node.id != node_id and wanted & set(node.concepts + node.keywords)
        ][:limit]

    async def find_related(
        self,
        node_id: str,
        types: Optional[list[str]] = None,
        depth: int = 2,
    ) -> list[dict[str, Any]]:
        related = []
        for from_id, to_id, rel_type, _ in self.edges:
            if types and rel_type not in types:
                continue
            if node_id in (from_id, to_id):
                other = to_id if from_id == node_id else from_id
                related.append(
                    {
                        "node": self.nodes[other].model_dump(exclude={"embedding"}),
                        "distance": 1,
                        "relationship_types": [rel_type],
                    }
                )
        return related

    async def search_by_content(self, text: str, limit: int = 10) -> list[GraphNode]:
        return [n for n in self.nodes.values() if text.lower() in n.content.lower()][:limit]

    async def delete_node(self, node_id: str) -> bool:
        if self.nodes.pop(node_id, None) is None:
            return False
        self.edges = [e for e in self.edges if node_id not in (e[0], e[1])]
        return True

    async def set_category(self, node_id: str, category: str) -> bool:
        node = self.nodes.get(node_id)
        if node is None:
            return False
        self.nodes[node_id] = node.model_copy(update={"category": category})
        return True

    async def statistics(self) -> dict[str, Any]:
        edge_types: dict[str, int] = {}
        for _, _, rel_type, _ in self.edges:
            edge_types[rel_type] = edge_types.get(rel_type, 0) + 1
        return {
            "node_count": len(self.nodes),
            "edge_count": len(self.edges),
            "edge_types": edge_types,
        }


@pytest.fixture(autouse=True)
def reset_breakers():
    """Keep the process-wide circuit breakers from leaking between tests."""
    yield
    reset_all_circuit_breakers()


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with every enrichment backend unconfigured."""
    return Settings(
        _env_file=None,
        sqlite_db_path=str(tmp_path / "memories.db"),
        redis_url=None,
        neo4j_uri=None,
        neo4j_password=None,
        pinecone_api_key=None,
        cohere_api_key=None,
        anthropic_api_key=None,
        api_key_enabled=False,
    )


@pytest.fixture
async def record_store(tmp_path):
    """Connected SQLite store on a temporary file."""
    store = SQLiteRecordStore(str(tmp_path / "memories.db"))
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def concept_store() -> InMemoryConceptStore:
    return InMemoryConceptStore()


@pytest.fixture
def graph_store() -> InMemoryGraphStore:
    return InMemoryGraphStore()


@pytest.fixture
def analysis_payload() -> dict:
    """LLM payload with two concepts that passes the significance gate."""
    return {
        "memory_type": "erlebnisse",
        "confidence": 0.9,
        "mood": "curious",
        "extracted_concepts": ["graph database", "memory pipeline"],
        "keywords": ["neo4j", "pinecone"],
        "category_suggestion": "projekte",
        "significance_signal": True,
        "concepts": [
            {
                "title": "Graph storage",
                "description": "Relationships between memories live in Neo4j.",
                "memory_type": "projekte",
                "confidence": 0.9,
                "keywords": ["neo4j"],
                "extracted_concepts": ["graph database"],
            },
            {
                "title": "Concept index",
                "description": "Each concept is embedded and indexed separately.",
                "memory_type": "projekte",
                "confidence": 0.85,
                "keywords": ["pinecone"],
                "extracted_concepts": ["memory pipeline"],
            },
        ],
    }


@pytest.fixture
def analysis_backend(analysis_payload) -> AsyncMock:
    backend = AsyncMock()
    backend.analyze.return_value = analysis_payload
    return backend


@pytest.fixture
def analyzer(analysis_backend) -> SemanticAnalyzer:
    return SemanticAnalyzer(
        analysis_backend,
        timeout=1.0,
        max_attempts=2,
        retry_wait_max=0.01,
        breaker=CircuitBreaker(name="test-llm", failure_threshold=5),
    )


@pytest.fixture
def recency_cache() -> InMemoryRecencyCache:
    return InMemoryRecencyCache(capacity=10)


@pytest.fixture
def pipeline(
    settings,
    record_store,
    recency_cache,
    analyzer,
    concept_store,
    graph_store,
) -> MemoryPipeline:
    """MemoryPipeline with SQLite, in-memory enrichment stores and a mocked LLM."""
    return MemoryPipeline(
        record_store=record_store,
        gate=IngestionGate(settings.allowed_categories),
        router=CategoryRouter(settings.allowed_categories, settings.category_override_threshold),
        evaluator=SignificanceEvaluator(),
        recency_cache=recency_cache,
        analyzer=analyzer,
        concept_writer=ConceptIndexWriter(concept_store, timeout=1.0),
        relationship_builder=RelationshipBuilder(graph_store, timeout=1.0),
    )

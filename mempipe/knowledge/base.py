"""Contracts for the enrichment stores.

ConceptIndexWriter and RelationshipBuilder depend only on these protocols,
so tests and alternative backends can stand in for Pinecone and Neo4j.
"""

from typing import Any, Optional, Protocol

from mempipe.models import GraphNode


class ConceptStore(Protocol):
    """Vector-indexed concept entries."""

    async def add(
        self,
        ids: list[str],
        documents: list[str],
        metadatas: list[dict[str, Any]],
    ) -> None: ...

    async def query(
        self,
        text: str,
        k: int = 10,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        """Return matches as {id, document, metadata, distance}, best first."""
        ...

    async def count(self) -> int: ...


class GraphStore(Protocol):
    """Memory nodes and typed relationships."""

    async def create_node(self, node: GraphNode) -> None: ...

    async def create_edge(
        self,
        from_id: str,
        to_id: str,
        type: str,
        properties: Optional[dict[str, Any]] = None,
    ) -> bool: ...

    async def find_by_id(self, node_id: str) -> Optional[GraphNode]: ...

    async def find_candidates(
        self, node_id: str, terms: list[str], limit: int
    ) -> list[GraphNode]:
        """Nodes other than node_id sharing at least one concept or keyword."""
        ...

    async def find_related(
        self,
        node_id: str,
        types: Optional[list[str]] = None,
        depth: int = 2,
    ) -> list[dict[str, Any]]: ...

    async def search_by_content(self, text: str, limit: int = 10) -> list[GraphNode]: ...

    async def delete_node(self, node_id: str) -> bool: ...

    async def set_category(self, node_id: str, category: str) -> bool: ...

    async def statistics(self) -> dict[str, Any]: ...


class Embedder(Protocol):
    """Text embedding provider."""

    async def embed_text(self, text: str) -> list[float]: ...

    async def embed_query(self, query: str) -> list[float]: ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]: ...

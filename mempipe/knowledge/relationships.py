"""
Relationship Builder.

Mirrors a significant memory into the graph and links it to existing
memories whose concepts or keywords overlap. Edge creation is best-effort
and concurrent; the builder reports what it managed to create instead of
raising.
"""

import asyncio
from typing import Any, Optional

import structlog

from mempipe.knowledge.base import Embedder, GraphStore
from mempipe.models import (
    CanonicalMemoryRecord,
    ForceRelationship,
    GraphEdge,
    GraphNode,
    LinkResult,
    MemoryId,
    SemanticAnalysis,
    utc_now_iso,
)
from mempipe.monitoring.metrics import record_enrichment_writes

logger = structlog.get_logger(__name__)


def overlap_score(left: set[str], right: set[str]) -> float:
    """Jaccard overlap of two term sets."""
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


def node_terms(node: GraphNode) -> set[str]:
    return {t.lower() for t in node.concepts + node.keywords if t}


def classify_edge(node: GraphNode, candidate: GraphNode) -> str:
    """Pick the relationship type between a new node and a candidate."""
    if node.topic.strip().lower() == candidate.topic.strip().lower():
        return "SAME_TOPIC"
    if set(node.concepts) & set(candidate.concepts):
        return "CONCEPT_SHARED"
    if node.category == candidate.category:
        return "SAME_CATEGORY"
    return "RELATED_TO"


class RelationshipBuilder:
    """
    Creates memory nodes and derived edges in the graph store.

    Args:
        graph: Graph store holding Memory nodes.
        embedder: Optional embeddings provider for node embeddings.
        similarity_threshold: Minimum overlap score for a derived edge.
        candidate_limit: Maximum existing nodes compared per memory.
        concurrency: Maximum edge writes in flight at once.
        timeout: Seconds allowed for each individual graph call.
    """

    def __init__(
        self,
        graph: GraphStore,
        embedder: Optional[Embedder] = None,
        similarity_threshold: float = 0.2,
        candidate_limit: int = 15,
        concurrency: int = 4,
        timeout: float = 15.0,
    ) -> None:
        self._graph = graph
        self._embedder = embedder
        self._similarity_threshold = similarity_threshold
        self._candidate_limit = candidate_limit
        self._concurrency = concurrency
        self._timeout = timeout

    async def _embed(self, record: CanonicalMemoryRecord) -> Optional[list[float]]:
        if self._embedder is None:
            return None
        try:
            return await asyncio.wait_for(
                self._embedder.embed_text(record.content), timeout=self._timeout
            )
        except Exception as e:
            logger.warning("graph_node_embedding_failed", memory_id=record.id, error=str(e))
            return None

    def derive_edges(self, node: GraphNode, candidates: list[GraphNode]) -> list[GraphEdge]:
        """Edges from node to every candidate above the overlap threshold."""
        terms = node_terms(node)
        edges = []
        for candidate in candidates:
            if candidate.id == node.id:
                continue
            candidate_terms = node_terms(candidate)
            score = overlap_score(terms, candidate_terms)
            if score < self._similarity_threshold or score == 0.0:
                continue
            edges.append(
                GraphEdge(
                    from_id=node.id,
                    to_id=candidate.id,
                    type=classify_edge(node, candidate),
                    properties={
                        "similarity_score": round(score, 4),
                        "shared_terms": sorted(terms & candidate_terms),
                        "created_at": utc_now_iso(),
                    },
                )
            )
        return edges

    async def _create_edges(self, edges: list[GraphEdge]) -> tuple[int, list[str]]:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _create(edge: GraphEdge) -> bool:
            async with semaphore:
                return await asyncio.wait_for(
                    self._graph.create_edge(edge.from_id, edge.to_id, edge.type, edge.properties),
                    timeout=self._timeout,
                )

        outcomes = await asyncio.gather(*(_create(e) for e in edges), return_exceptions=True)

        created = 0
        errors = []
        for edge, outcome in zip(edges, outcomes):
            if outcome is True:
                created += 1
                continue
            message = "target node not found" if outcome is False else str(outcome)
            errors.append(f"Edge {edge.type} {edge.from_id}->{edge.to_id}: {message}")
            logger.warning(
                "graph_edge_failed",
                from_id=edge.from_id,
                to_id=edge.to_id,
                type=edge.type,
                error=message,
            )
        record_enrichment_writes("edges", succeeded=created, failed=len(errors))
        return created, errors

    async def link(
        self,
        record: CanonicalMemoryRecord,
        analysis: Optional[SemanticAnalysis] = None,
        force_relationships: Optional[list[ForceRelationship]] = None,
    ) -> LinkResult:
        """Create the node for a stored memory and its relationships."""
        node = GraphNode.from_record(record, analysis, await self._embed(record))

        try:
            await asyncio.wait_for(self._graph.create_node(node), timeout=self._timeout)
        except Exception as e:
            logger.warning("graph_node_failed", memory_id=record.id, error=str(e))
            return LinkResult(stored_in_graph=False, errors=[f"Graph node: {e}"])

        errors: list[str] = []
        candidates: list[GraphNode] = []
        terms = sorted(node_terms(node))
        if terms:
            try:
                candidates = await asyncio.wait_for(
                    self._graph.find_candidates(node.id, terms, self._candidate_limit),
                    timeout=self._timeout,
                )
            except Exception as e:
                logger.warning("graph_candidates_failed", memory_id=record.id, error=str(e))
                errors.append(f"Candidate lookup: {e}")

        edges = self.derive_edges(node, candidates)
        for forced in force_relationships or []:
            edges.append(
                GraphEdge(
                    from_id=node.id,
                    to_id=str(forced.target_memory_id),
                    type=forced.relationship_type,
                    properties={**forced.properties, "forced": True, "created_at": utc_now_iso()},
                )
            )

        created, edge_errors = await self._create_edges(edges) if edges else (0, [])
        errors.extend(edge_errors)

        logger.info(
            "graph_linked",
            memory_id=record.id,
            candidates=len(candidates),
            relationships_created=created,
            failed=len(edge_errors),
        )
        return LinkResult(stored_in_graph=True, relationships_created=created, errors=errors)

    async def remove(self, memory_id: MemoryId) -> bool:
        """Detach-delete the node of a deleted memory."""
        return await asyncio.wait_for(self._graph.delete_node(str(memory_id)), timeout=self._timeout)

    async def update_category(self, memory_id: MemoryId, category: str) -> bool:
        return await asyncio.wait_for(
            self._graph.set_category(str(memory_id), category), timeout=self._timeout
        )

    async def find_related(
        self,
        memory_id: MemoryId,
        types: Optional[list[str]] = None,
        max_depth: int = 2,
    ) -> list[dict[str, Any]]:
        return await self._graph.find_related(str(memory_id), types, max_depth)

    async def statistics(self) -> dict[str, Any]:
        return await self._graph.statistics()

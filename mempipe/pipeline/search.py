"""
Intelligent Search.

Combines substring search over canonical records with semantic lookup in
the concept index and reranks the merged hits. With a graph store the
search can also pull in graph matches and the neighbourhood of the best
hits, and a single memory can be retrieved together with its concepts,
graph neighbours and concept-similar memories.

Usage:
    search = MemorySearch(record_store, concept_store, graph_store, reranker)
    hits = await search.search("graph database", categories=["projekte"])
    for hit in hits:
        print(f"[{hit['score']:.2f}] {hit['source']} {hit['topic']}")

    graph_result = await search.search_with_graph("graph database", max_depth=2)
    detail = await search.retrieve_advanced(42)
"""

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Literal, Optional, TypedDict, TypeVar

import structlog

from mempipe.knowledge.base import ConceptStore, GraphStore
from mempipe.knowledge.cohere_reranker import CohereReranker
from mempipe.models import CanonicalMemoryRecord, GraphNode, MemoryId
from mempipe.storage.base import RecordStore

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SearchStrategy = Literal["hybrid", "text", "llm"]

CONCEPT_QUERY_LIMIT = 10
GRAPH_QUERY_LIMIT = 10
GRAPH_EXPANSION_SEEDS = 5
CONNECTION_BONUS = 0.5
RECENT_DAYS = 30

ADVANCED_CONCEPT_LIMIT = 20
SIMILAR_MEMORY_LIMIT = 10


class SearchHit(TypedDict):
    """One merged search result."""

    memory_id: str
    category: str
    topic: str
    content: str
    date: str
    source: str
    similarity: float
    concept_title: Optional[str]
    connections: int
    score: float


class GraphRelationship(TypedDict):
    """Path found while expanding a search hit through the graph."""

    from_id: str
    to_id: str
    distance: int
    relationship_types: list[str]


class GraphSearchResult(TypedDict):
    results: list[SearchHit]
    sources: dict[str, int]
    relationships: list[GraphRelationship]
    related_memories: int
    relationship_depth: int


class SimilarMemory(TypedDict):
    memory_id: str
    category: str
    topic: str
    content: str
    date: str
    relevance: float
    matched_concepts: int


class AdvancedRetrieval(TypedDict):
    """One memory with everything the enrichment stores know about it."""

    memory: CanonicalMemoryRecord
    in_graph: bool
    concepts: list[dict[str, Any]]
    related_memories: list[dict[str, Any]]
    similar_memories: list[SimilarMemory]


def _parse_date(value: str) -> Optional[date]:
    try:
        return date.fromisoformat(value[:10])
    except (TypeError, ValueError):
        return None


def _similarity(match: dict[str, Any]) -> float:
    return max(0.0, 1.0 - float(match.get("distance", 1.0)))


def _hit_from_node(node: dict[str, Any], source: str) -> SearchHit:
    return SearchHit(
        memory_id=str(node["id"]),
        category=node.get("category", ""),
        topic=node.get("topic", ""),
        content=node.get("content", ""),
        date=node.get("date", ""),
        source=source,
        similarity=0.0,
        concept_title=None,
        connections=0,
        score=0.0,
    )


class MemorySearch:
    """
    Record + concept search with text, hybrid or model reranking.

    Args:
        record_store: Canonical store searched by substring.
        concept_store: Optional concept index searched semantically.
        graph_store: Optional memory graph for graph search and expansion.
        reranker: Optional relevance model behind the "llm" strategy.
    """

    def __init__(
        self,
        record_store: RecordStore,
        concept_store: Optional[ConceptStore] = None,
        graph_store: Optional[GraphStore] = None,
        reranker: Optional[CohereReranker] = None,
    ) -> None:
        self._record_store = record_store
        self._concept_store = concept_store
        self._graph_store = graph_store
        self._reranker = reranker

    async def _optional(self, event: str, call: Awaitable[T], default: T, **log: Any) -> T:
        """Await an enrichment-store call; failures are logged and replaced by default."""
        try:
            return await call
        except Exception as e:
            logger.warning(event, error=str(e), **log)
            return default

    async def _concept_matches(
        self, query: str, categories: Optional[list[str]]
    ) -> list[dict[str, Any]]:
        if self._concept_store is None:
            return []
        metadata_filter = {"source_category": {"$in": categories}} if categories else None
        return await self._optional(
            "concept_search_failed",
            self._concept_store.query(query, k=CONCEPT_QUERY_LIMIT, filter=metadata_filter),
            [],
            query=query,
        )

    async def _graph_matches(
        self, query: str, categories: Optional[list[str]]
    ) -> list[GraphNode]:
        if self._graph_store is None:
            return []
        nodes = await self._optional(
            "graph_search_failed",
            self._graph_store.search_by_content(query, GRAPH_QUERY_LIMIT),
            [],
            query=query,
        )
        return [n for n in nodes if not categories or n.category in categories]

    @staticmethod
    def merge(
        records: list[CanonicalMemoryRecord], matches: list[dict[str, Any]]
    ) -> list[SearchHit]:
        """Merge record hits and concept matches by source memory id."""
        hits: dict[str, SearchHit] = {}
        for record in records:
            hits[str(record.id)] = _hit_from_node(record.model_dump(), "record")

        for match in matches:
            metadata = match.get("metadata") or {}
            memory_id = str(metadata.get("source_memory_id", ""))
            if not memory_id:
                continue
            similarity = _similarity(match)

            existing = hits.get(memory_id)
            if existing is None:
                hit = _hit_from_node(
                    {
                        "id": memory_id,
                        "category": metadata.get("source_category", ""),
                        "topic": metadata.get("source_topic", ""),
                        "content": match.get("document", ""),
                        "date": metadata.get("source_date", ""),
                    },
                    "concept",
                )
                hit["similarity"] = similarity
                hit["concept_title"] = metadata.get("concept_title")
                hits[memory_id] = hit
                continue

            if existing["source"] == "record":
                existing["source"] = "both"
                existing["concept_title"] = metadata.get("concept_title")
            existing["similarity"] = max(existing["similarity"], similarity)

        return list(hits.values())

    @staticmethod
    def text_score(hit: SearchHit, terms: list[str]) -> float:
        topic = hit["topic"].lower()
        content = hit["content"].lower()
        score = 0.0
        for term in terms:
            if term in topic:
                score += 3.0
            if term in content:
                score += 1.0
        score += 2.0 * hit["similarity"]
        if hit["source"] == "both":
            score += 1.0
        return score

    def rerank(
        self,
        hits: list[SearchHit],
        query: str,
        strategy: SearchStrategy = "hybrid",
        today: Optional[date] = None,
    ) -> list[SearchHit]:
        """Score hits by text overlap; "hybrid" adds recency and a position penalty."""
        terms = [t for t in query.lower().split() if t]
        cutoff = (today or datetime.now(timezone.utc).date()) - timedelta(days=RECENT_DAYS)

        for position, hit in enumerate(hits):
            score = self.text_score(hit, terms)
            if strategy == "hybrid":
                hit_date = _parse_date(hit["date"])
                if hit_date is not None and hit_date > cutoff:
                    score += 0.5
                score -= 0.1 * position
            hit["score"] = round(score, 4)

        return sorted(hits, key=lambda h: h["score"], reverse=True)

    async def rerank_with_model(self, hits: list[SearchHit], query: str) -> list[SearchHit]:
        """Score hits with the relevance model; hits it cannot score sink to 0."""
        if not hits:
            return hits
        results = await self._reranker.rerank(
            query, [f"{hit['topic']}\n{hit['content']}" for hit in hits]
        )
        for hit in hits:
            hit["score"] = 0.0
        for result in results:
            hits[result["index"]]["score"] = round(result["score"], 4)
        return sorted(hits, key=lambda h: h["score"], reverse=True)

    async def _apply_strategy(
        self, hits: list[SearchHit], query: str, strategy: SearchStrategy
    ) -> list[SearchHit]:
        if strategy != "llm":
            return self.rerank(hits, query, strategy)
        if self._reranker is None:
            logger.warning("model_rerank_unavailable", fallback="text")
            return self.rerank(hits, query, "text")
        try:
            return await self.rerank_with_model(hits, query)
        except Exception as e:
            logger.warning("model_rerank_failed", error=str(e), fallback="text")
            return self.rerank(hits, query, "text")

    async def search(
        self,
        query: str,
        categories: Optional[list[str]] = None,
        rerank: bool = True,
        strategy: SearchStrategy = "hybrid",
    ) -> list[SearchHit]:
        """
        Search records and concepts concurrently.

        A failing concept index degrades to record-only results; a failing
        record store propagates. The "llm" strategy falls back to text
        scoring when no reranker is configured or it fails.
        """
        records, matches = await asyncio.gather(
            self._record_store.search_basic(query, categories),
            self._concept_matches(query, categories),
        )
        hits = self.merge(records, matches)
        if rerank:
            hits = await self._apply_strategy(hits, query, strategy)

        logger.info(
            "memory_search_completed",
            query=query,
            records=len(records),
            concepts=len(matches),
            results=len(hits),
            strategy=strategy if rerank else None,
        )
        return hits

    # -------------------------------------------------------------------------
    # Graph-enhanced search
    # -------------------------------------------------------------------------

    async def _expand(
        self, seeds: list[SearchHit], max_depth: int
    ) -> list[tuple[str, dict[str, Any]]]:
        outcomes = await asyncio.gather(
            *(
                self._graph_store.find_related(seed["memory_id"], None, max_depth)
                for seed in seeds
            ),
            return_exceptions=True,
        )
        expanded = []
        for seed, outcome in zip(seeds, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(
                    "graph_expansion_failed", memory_id=seed["memory_id"], error=str(outcome)
                )
                continue
            expanded.extend((seed["memory_id"], item) for item in outcome)
        return expanded

    async def search_with_graph(
        self,
        query: str,
        categories: Optional[list[str]] = None,
        include_related: bool = True,
        max_depth: int = 2,
    ) -> GraphSearchResult:
        """
        Record, concept and graph search, expanded through relationships.

        The best text-ranked hits seed a bounded traversal; memories reached
        that way join the results as "related". Final scores add a bonus per
        relationship touching a hit. Graph failures degrade to the plain
        merged results; a failing record store propagates.
        """
        records, matches, nodes = await asyncio.gather(
            self._record_store.search_basic(query, categories),
            self._concept_matches(query, categories),
            self._graph_matches(query, categories),
        )
        by_id = {hit["memory_id"]: hit for hit in self.merge(records, matches)}
        for node in nodes:
            by_id.setdefault(node.id, _hit_from_node(node.model_dump(), "graph"))

        relationships: list[GraphRelationship] = []
        related_ids: set[str] = set()
        if include_related and self._graph_store is not None and by_id:
            seeds = self.rerank(list(by_id.values()), query, "text")[:GRAPH_EXPANSION_SEEDS]
            for seed_id, item in await self._expand(seeds, max_depth):
                node = item["node"]
                if categories and node.get("category") not in categories:
                    continue
                target_id = str(node["id"])
                relationships.append(
                    GraphRelationship(
                        from_id=seed_id,
                        to_id=target_id,
                        distance=int(item.get("distance", 1)),
                        relationship_types=list(item.get("relationship_types") or []),
                    )
                )
                if target_id not in by_id:
                    by_id[target_id] = _hit_from_node(node, "related")
                    related_ids.add(target_id)

        for relationship in relationships:
            for memory_id in (relationship["from_id"], relationship["to_id"]):
                if memory_id in by_id:
                    by_id[memory_id]["connections"] += 1

        results = self.rerank(list(by_id.values()), query, "text")
        for hit in results:
            hit["score"] = round(hit["score"] + CONNECTION_BONUS * hit["connections"], 4)
        results.sort(key=lambda h: h["score"], reverse=True)

        logger.info(
            "graph_search_completed",
            query=query,
            records=len(records),
            concepts=len(matches),
            graph=len(nodes),
            related=len(related_ids),
            relationships=len(relationships),
        )
        return GraphSearchResult(
            results=results,
            sources={"records": len(records), "concepts": len(matches), "graph": len(nodes)},
            relationships=relationships,
            related_memories=len(related_ids),
            relationship_depth=max_depth,
        )

    # -------------------------------------------------------------------------
    # Advanced retrieval
    # -------------------------------------------------------------------------

    async def _graph_node(self, memory_id: str) -> Optional[GraphNode]:
        if self._graph_store is None:
            return None
        return await self._optional(
            "graph_node_lookup_failed",
            self._graph_store.find_by_id(memory_id),
            None,
            memory_id=memory_id,
        )

    async def _graph_related(self, memory_id: str, max_depth: int) -> list[dict[str, Any]]:
        if self._graph_store is None:
            return []
        return await self._optional(
            "graph_related_lookup_failed",
            self._graph_store.find_related(memory_id, None, max_depth),
            [],
            memory_id=memory_id,
        )

    async def _own_concepts(self, record: CanonicalMemoryRecord) -> list[dict[str, Any]]:
        if self._concept_store is None:
            return []
        return await self._optional(
            "memory_concepts_lookup_failed",
            self._concept_store.query(
                f"{record.topic} {record.content}",
                k=ADVANCED_CONCEPT_LIMIT,
                filter={"source_memory_id": {"$eq": str(record.id)}},
            ),
            [],
            memory_id=record.id,
        )

    async def _similar_memories(self, record: CanonicalMemoryRecord) -> list[SimilarMemory]:
        """Other memories owning concepts close to this memory's text."""
        if self._concept_store is None:
            return []
        matches = await self._optional(
            "similar_concepts_lookup_failed",
            self._concept_store.query(f"{record.topic} {record.content}", k=ADVANCED_CONCEPT_LIMIT),
            [],
            memory_id=record.id,
        )

        relevance: dict[str, list[float]] = {}
        for match in matches:
            source_id = str((match.get("metadata") or {}).get("source_memory_id", ""))
            if source_id and source_id != str(record.id):
                relevance.setdefault(source_id, []).append(_similarity(match))

        ranked = sorted(relevance, key=lambda i: max(relevance[i]), reverse=True)
        ranked = ranked[:SIMILAR_MEMORY_LIMIT]
        found = await asyncio.gather(*(self._record_store.get(i) for i in ranked))
        return [
            SimilarMemory(
                memory_id=str(other.id),
                category=other.category,
                topic=other.topic,
                content=other.content,
                date=other.date,
                relevance=round(max(relevance[memory_id]), 4),
                matched_concepts=len(relevance[memory_id]),
            )
            for memory_id, other in zip(ranked, found)
            if other is not None
        ]

    async def retrieve_advanced(
        self, memory_id: MemoryId, max_depth: int = 2
    ) -> Optional[AdvancedRetrieval]:
        """
        Fetch one memory with its concepts, graph neighbours and similar memories.

        Returns None when the canonical record does not exist. Enrichment
        store failures leave the matching section empty.
        """
        record = await self._record_store.get(memory_id)
        if record is None:
            return None

        key = str(record.id)
        node, related, concepts, similar = await asyncio.gather(
            self._graph_node(key),
            self._graph_related(key, max_depth),
            self._own_concepts(record),
            self._similar_memories(record),
        )

        logger.info(
            "memory_retrieved_advanced",
            memory_id=key,
            in_graph=node is not None,
            concepts=len(concepts),
            related=len(related),
            similar=len(similar),
        )
        return AdvancedRetrieval(
            memory=record,
            in_graph=node is not None,
            concepts=concepts,
            related_memories=related,
            similar_memories=similar,
        )


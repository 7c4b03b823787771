"""
Neo4j Memory Graph.

Async connection management, circuit-breaker protected query execution
and the memory graph operations used by the relationship builder.

Graph schema:
    (:Memory {id, category, topic, content, date, created_at,
              concepts, keywords, embedding})
    (:Memory)-[:RELATED_TO|SAME_CATEGORY|SAME_TOPIC|SIMILAR_TO|CONCEPT_SHARED
               {similarity_score, shared_terms, created_at}]->(:Memory)

Memory.id is the canonical record id as a string.
"""

from __future__ import annotations

import re
from typing import Any, Optional

import structlog
from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncManagedTransaction
from neo4j.exceptions import AuthError, Neo4jError, ServiceUnavailable

from mempipe.core.circuit_breaker import CircuitBreaker, get_circuit_breaker
from mempipe.core.exceptions import (
    KnowledgeStoreConnectionError,
    KnowledgeStoreError,
    KnowledgeStoreQueryError,
)
from mempipe.models import GraphNode, utc_now_iso
from mempipe.monitoring.metrics import track_store_operation

logger = structlog.get_logger(__name__)

RELATIONSHIP_TYPES = (
    "RELATED_TO",
    "SAME_CATEGORY",
    "SAME_TOPIC",
    "SIMILAR_TO",
    "CONCEPT_SHARED",
)

# Relationship types are interpolated into Cypher, so they are whitelisted by shape
_REL_TYPE_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]*$")

MAX_TRAVERSAL_DEPTH = 5

_NODE_PROJECTION = (
    "{.id, .category, .topic, .content, .date, .created_at, .concepts, .keywords}"
)

SCHEMA_CONSTRAINTS = """
// Memory node constraints and indexes
CREATE CONSTRAINT memory_id IF NOT EXISTS FOR (m:Memory) REQUIRE m.id IS UNIQUE;
CREATE INDEX memory_category IF NOT EXISTS FOR (m:Memory) ON (m.category);
CREATE INDEX memory_topic IF NOT EXISTS FOR (m:Memory) ON (m.topic);
CREATE INDEX memory_created_at IF NOT EXISTS FOR (m:Memory) ON (m.created_at);
"""


def validate_relationship_type(rel_type: str) -> str:
    """Return rel_type if it is a safe Cypher relationship type name."""
    if not _REL_TYPE_PATTERN.match(rel_type or ""):
        raise KnowledgeStoreQueryError(
            f"Invalid relationship type: {rel_type!r}",
            {"relationship_type": rel_type},
        )
    return rel_type


class Neo4jGraphStore:
    """
    Async Neo4j client holding the memory graph.

    Usage:
        async with Neo4jGraphStore(uri, user, password) as graph:
            await graph.create_node(GraphNode.from_record(record, analysis))
            related = await graph.find_related("42", types=["CONCEPT_SHARED"], depth=2)
    """

    def __init__(
        self,
        uri: str,
        user: str,
        password: str,
        database: str = "neo4j",
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self._uri = uri
        self._user = user
        self._password = password
        self._database = database
        self._breaker = breaker or get_circuit_breaker("neo4j", failure_threshold=5, recovery_timeout=60)
        self._driver: AsyncDriver | None = None

    async def connect(self, auto_init_schema: bool = True) -> None:
        """Establish connection to Neo4j database.

        Raises:
            KnowledgeStoreConnectionError: If connection fails.
        """
        if self._driver is not None:
            return

        driver = AsyncGraphDatabase.driver(self._uri, auth=(self._user, self._password))
        try:
            await driver.verify_connectivity()
        except (AuthError, ServiceUnavailable) as e:
            await driver.close()
            logger.error("neo4j_connection_failed", error=str(e), uri=self._uri)
            raise KnowledgeStoreConnectionError(
                f"Neo4j unavailable: {e}",
                {"uri": self._uri, "original_error": str(e)},
            )
        except Exception as e:
            await driver.close()
            logger.error(
                "neo4j_connection_failed",
                error=str(e),
                error_type=type(e).__name__,
                uri=self._uri,
            )
            raise KnowledgeStoreConnectionError(
                f"Failed to connect to Neo4j: {e}",
                {"uri": self._uri, "original_error": str(e)},
            )

        self._driver = driver
        logger.info("neo4j_connected", uri=self._uri)

        if auto_init_schema:
            await self._initialize_schema()

    async def _initialize_schema(self) -> None:
        """Create constraints and indexes. Safe to call repeatedly (IF NOT EXISTS)."""
        statements = [
            stmt.strip()
            for stmt in SCHEMA_CONSTRAINTS.strip().split(";")
            if stmt.strip() and not stmt.strip().startswith("//")
        ]

        initialized_count = 0
        for statement in statements:
            try:
                async with self.driver.session(database=self._database) as session:
                    await session.run(statement)
                initialized_count += 1
            except Neo4jError as e:
                logger.debug(
                    "neo4j_schema_item_skipped",
                    statement=statement[:50],
                    reason=str(e),
                )

        logger.info(
            "neo4j_schema_initialized",
            total_statements=len(statements),
            initialized=initialized_count,
        )

    async def close(self) -> None:
        """Close the Neo4j driver connection."""
        if self._driver is not None:
            await self._driver.close()
            self._driver = None
            logger.info("neo4j_disconnected")

    async def __aenter__(self) -> Neo4jGraphStore:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def driver(self) -> AsyncDriver:
        """Get the Neo4j driver, raising if not connected."""
        if self._driver is None:
            raise RuntimeError("Neo4j client not connected. Use 'async with' or call connect().")
        return self._driver

    async def _execute(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
        write: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Run a query in a managed read or write transaction.

        Raises:
            KnowledgeStoreError: If circuit breaker is open.
            KnowledgeStoreQueryError: If the query fails.
        """
        if not self._breaker.can_execute():
            recovery_time = self._breaker.time_until_recovery()
            logger.warning("neo4j_circuit_open", recovery_time=recovery_time)
            raise KnowledgeStoreError(
                f"Neo4j circuit breaker open. Recovery in {recovery_time:.1f}s",
                {"recovery_time": recovery_time},
            )

        async def _work(tx: AsyncManagedTransaction) -> list[dict[str, Any]]:
            result = await tx.run(query, parameters or {})
            return await result.data()

        operation = "write" if write else "read"
        try:
            with track_store_operation("neo4j", operation):
                async with self.driver.session(database=self._database) as session:
                    if write:
                        records = await session.execute_write(_work)
                    else:
                        records = await session.execute_read(_work)
        except (ServiceUnavailable, Neo4jError) as e:
            await self._breaker.record_failure()
            logger.error(
                "neo4j_query_failed",
                query=query[:100],
                error=str(e),
                error_type=type(e).__name__,
            )
            raise KnowledgeStoreQueryError(
                f"Neo4j {operation} failed: {e}",
                {"query": query[:100], "original_error": str(e)},
            )

        await self._breaker.record_success()
        logger.debug("neo4j_query_executed", query=query[:100], record_count=len(records))
        return records

    # -------------------------------------------------------------------------
    # Memory graph operations
    # -------------------------------------------------------------------------

    async def create_node(self, node: GraphNode) -> None:
        """Create or refresh the Memory node for a canonical record."""
        await self._execute(
            """
            MERGE (m:Memory {id: $id})
            SET m.category = $category,
                m.topic = $topic,
                m.content = $content,
                m.date = $date,
                m.created_at = coalesce($created_at, m.created_at),
                m.concepts = $concepts,
                m.keywords = $keywords,
                m.embedding = $embedding
            """,
            node.model_dump(),
            write=True,
        )
        logger.debug("neo4j_memory_node_created", memory_id=node.id)

    async def create_edge(
        self,
        from_id: str,
        to_id: str,
        type: str,
        properties: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Create a typed edge; returns False if either endpoint is missing."""
        rel_type = validate_relationship_type(type)
        records = await self._execute(
            f"""
            MATCH (a:Memory {{id: $from_id}}), (b:Memory {{id: $to_id}})
            MERGE (a)-[r:{rel_type}]->(b)
            SET r += $properties,
                r.created_at = coalesce(r.created_at, $created_at)
            RETURN count(r) AS created
            """,
            {
                "from_id": str(from_id),
                "to_id": str(to_id),
                "properties": properties or {},
                "created_at": utc_now_iso(),
            },
            write=True,
        )
        return bool(records and records[0]["created"])

    async def find_by_id(self, node_id: str) -> Optional[GraphNode]:
        records = await self._execute(
            f"MATCH (m:Memory {{id: $id}}) RETURN m {_NODE_PROJECTION} AS node",
            {"id": str(node_id)},
        )
        return GraphNode(**records[0]["node"]) if records else None

    async def find_candidates(
        self, node_id: str, terms: list[str], limit: int
    ) -> list[GraphNode]:
        """Memory nodes sharing at least one concept or keyword with terms."""
        if not terms:
            return []
        records = await self._execute(
            f"""
            MATCH (m:Memory)
            WHERE m.id <> $id
              AND (any(t IN coalesce(m.concepts, []) WHERE t IN $terms)
                   OR any(k IN coalesce(m.keywords, []) WHERE k IN $terms))
            RETURN m {_NODE_PROJECTION} AS node
            ORDER BY m.created_at DESC
            LIMIT $limit
            """,
            {"id": str(node_id), "terms": terms, "limit": limit},
        )
        return [GraphNode(**record["node"]) for record in records]

    async def find_related(
        self,
        node_id: str,
        types: Optional[list[str]] = None,
        depth: int = 2,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """
        Bounded-depth traversal from one memory.

        Returns:
            [{"node": {...}, "distance": int, "relationship_types": [...]}]
            ordered by distance.
        """
        depth = max(1, min(int(depth), MAX_TRAVERSAL_DEPTH))
        rel_filter = ""
        if types:
            rel_filter = ":" + "|".join(validate_relationship_type(t) for t in types)

        records = await self._execute(
            f"""
            MATCH path = (start:Memory {{id: $id}})-[{rel_filter}*1..{depth}]-(related:Memory)
            WHERE related.id <> $id
            WITH related, path
            ORDER BY length(path) ASC
            WITH related,
                 head(collect(length(path))) AS distance,
                 head(collect([rel IN relationships(path) | type(rel)])) AS relationship_types
            RETURN related {_NODE_PROJECTION} AS node, distance, relationship_types
            ORDER BY distance ASC, node.created_at DESC
            LIMIT $limit
            """,
            {"id": str(node_id), "limit": limit},
        )
        return records

    async def search_by_content(self, text: str, limit: int = 10) -> list[GraphNode]:
        records = await self._execute(
            f"""
            MATCH (m:Memory)
            WHERE toLower(m.content) CONTAINS toLower($text)
               OR toLower(m.topic) CONTAINS toLower($text)
            RETURN m {_NODE_PROJECTION} AS node
            ORDER BY m.created_at DESC
            LIMIT $limit
            """,
            {"text": text, "limit": limit},
        )
        return [GraphNode(**record["node"]) for record in records]

    async def delete_node(self, node_id: str) -> bool:
        """Detach-delete a memory node and all its relationships."""
        records = await self._execute(
            """
            MATCH (m:Memory {id: $id})
            WITH m, m.id AS id
            DETACH DELETE m
            RETURN count(id) AS deleted
            """,
            {"id": str(node_id)},
            write=True,
        )
        return bool(records and records[0]["deleted"])

    async def set_category(self, node_id: str, category: str) -> bool:
        records = await self._execute(
            """
            MATCH (m:Memory {id: $id})
            SET m.category = $category
            RETURN count(m) AS updated
            """,
            {"id": str(node_id), "category": category},
            write=True,
        )
        return bool(records and records[0]["updated"])

    async def statistics(self) -> dict[str, Any]:
        """Node count, edge count and edge-type histogram."""
        nodes = await self._execute("MATCH (m:Memory) RETURN count(m) AS count")
        edges = await self._execute(
            "MATCH (:Memory)-[r]->(:Memory) RETURN type(r) AS type, count(r) AS count"
        )
        edge_types = {record["type"]: record["count"] for record in edges}
        return {
            "node_count": nodes[0]["count"] if nodes else 0,
            "edge_count": sum(edge_types.values()),
            "edge_types": edge_types,
        }

    async def health_check(self) -> bool:
        try:
            await self._execute("RETURN 1 AS ok")
            return True
        except KnowledgeStoreError:
            return False

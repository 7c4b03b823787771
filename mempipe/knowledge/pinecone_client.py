"""
Pinecone Concept Store.

Vector index of extracted concepts. Pinecone stores vectors and metadata
only, so the concept document text travels in the "document" metadata key.
Embeddings come from the injected Cohere service.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

import structlog
from pinecone import Pinecone, ServerlessSpec

from mempipe.core.exceptions import (
    KnowledgeStoreConnectionError,
    KnowledgeStoreQueryError,
)
from mempipe.knowledge.base import Embedder
from mempipe.monitoring.metrics import track_store_operation

logger = structlog.get_logger(__name__)


def _clean_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """Pinecone accepts str, number, bool and list[str]; drop nulls, stringify the rest."""
    cleaned: dict[str, Any] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (str, bool, int, float)):
            cleaned[key] = value
        elif isinstance(value, (list, tuple)):
            cleaned[key] = [str(item) for item in value]
        else:
            cleaned[key] = str(value)
    return cleaned


class PineconeConceptStore:
    """
    Concept entries in a Pinecone serverless index.

    Usage:
        store = PineconeConceptStore(api_key, "mempipe-concepts", embeddings)
        store.connect()
        store.ensure_index()

        await store.add(["memory_1_concept_1"], ["description"], [{"concept_title": "t"}])
        matches = await store.query("graph datenbanken", k=5)
    """

    METRIC = "cosine"
    CLOUD = "aws"
    REGION = "us-east-1"

    def __init__(
        self,
        api_key: str,
        index_name: str,
        embeddings: Embedder,
        dimension: int = 1024,
        namespace: str = "",
    ) -> None:
        self._api_key = api_key
        self._index_name = index_name
        self._embeddings = embeddings
        self._dimension = dimension
        self._namespace = namespace
        self._client: Pinecone | None = None
        self._index: Any = None

    def connect(self) -> None:
        """Initialize connection to Pinecone."""
        if self._client is not None:
            return
        try:
            self._client = Pinecone(api_key=self._api_key)
        except Exception as e:
            raise KnowledgeStoreConnectionError(
                f"Failed to create Pinecone client: {e}",
                {"index": self._index_name},
            )
        logger.info("pinecone_client_initialized")

    @property
    def client(self) -> Pinecone:
        if self._client is None:
            raise RuntimeError("Pinecone client not initialized. Call connect() first.")
        return self._client

    @property
    def index(self) -> Any:
        if self._index is None:
            raise RuntimeError("Pinecone index not initialized. Call ensure_index() first.")
        return self._index

    def ensure_index(self, wait_for_ready: bool = True, timeout: int = 300) -> None:
        """Create the index if it doesn't exist and connect to it."""
        existing = [idx.name for idx in self.client.list_indexes()]

        if self._index_name not in existing:
            logger.info(
                "pinecone_creating_index",
                index_name=self._index_name,
                dimension=self._dimension,
                metric=self.METRIC,
            )
            self.client.create_index(
                name=self._index_name,
                dimension=self._dimension,
                metric=self.METRIC,
                spec=ServerlessSpec(cloud=self.CLOUD, region=self.REGION),
            )
            if wait_for_ready:
                deadline = time.time() + timeout
                while not self.client.describe_index(self._index_name).status.ready:
                    if time.time() > deadline:
                        raise KnowledgeStoreConnectionError(
                            f"Index {self._index_name} not ready after {timeout}s"
                        )
                    time.sleep(5)

        self._index = self.client.Index(self._index_name)
        logger.info("pinecone_index_connected", index_name=self._index_name)

    async def _in_executor(self, operation: str, fn: Any) -> Any:
        with track_store_operation("pinecone", operation):
            try:
                loop = asyncio.get_running_loop()
                return await loop.run_in_executor(None, fn)
            except Exception as e:
                logger.error("pinecone_operation_failed", operation=operation, error=str(e))
                raise KnowledgeStoreQueryError(
                    f"Pinecone {operation} failed: {e}",
                    {"index": self._index_name},
                )

    async def add(
        self,
        ids: list[str],
        documents: list[str],
        metadatas: list[dict[str, Any]],
    ) -> None:
        """Embed documents and upsert them with their metadata."""
        if not (len(ids) == len(documents) == len(metadatas)):
            raise ValueError("ids, documents and metadatas must have equal length")
        if not ids:
            return

        vectors = await self._embeddings.embed_batch(documents)
        records = [
            {
                "id": vector_id,
                "values": values,
                "metadata": _clean_metadata({**metadata, "document": document}),
            }
            for vector_id, document, metadata, values in zip(ids, documents, metadatas, vectors)
        ]
        await self._in_executor(
            "upsert",
            lambda: self.index.upsert(vectors=records, namespace=self._namespace),
        )
        logger.debug("pinecone_concepts_upserted", count=len(records))

    async def query(
        self,
        text: str,
        k: int = 10,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        """
        Semantic lookup of concepts.

        Returns:
            Matches as {id, document, metadata, distance} with cosine
            distance (1 - score), best first.
        """
        vector = await self._embeddings.embed_query(text)
        result = await self._in_executor(
            "query",
            lambda: self.index.query(
                vector=vector,
                top_k=k,
                filter=filter,
                namespace=self._namespace,
                include_metadata=True,
            ),
        )

        matches = []
        for match in result.matches:
            metadata = dict(match.metadata or {})
            matches.append(
                {
                    "id": match.id,
                    "document": metadata.pop("document", ""),
                    "metadata": metadata,
                    "distance": 1.0 - float(match.score),
                }
            )
        return matches

    async def count(self) -> int:
        stats = await self._in_executor("count", lambda: self.index.describe_index_stats())
        if self._namespace:
            namespace = (stats.namespaces or {}).get(self._namespace)
            return int(namespace.vector_count) if namespace else 0
        return int(stats.total_vector_count)

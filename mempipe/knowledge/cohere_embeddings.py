"""
Cohere Embeddings Service.

Embeds concept descriptions for the Pinecone concept index, search queries
for concept lookup, and memory contents for graph node embeddings. The
default model is multilingual because memories are mostly German.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor

import cohere
import structlog
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger(__name__)

# Thread pool for sync Cohere client
_executor = ThreadPoolExecutor(max_workers=4)


def _is_retryable(exception: BaseException) -> bool:
    """Check if exception should trigger retry."""
    error_str = str(exception).lower()
    return any(keyword in error_str for keyword in ["rate", "limit", "timeout", "unavailable", "429"])


_retry_policy = retry(
    retry=retry_if_exception(_is_retryable),
    wait=wait_exponential(multiplier=1, min=1, max=30),
    stop=stop_after_attempt(4),
    reraise=True,
    before_sleep=lambda retry_state: logger.warning(
        "cohere_retry",
        attempt=retry_state.attempt_number,
        wait=retry_state.next_action.sleep if retry_state.next_action else 0,
    ),
)


class CohereEmbeddingsService:
    """
    Cohere embeddings with retries and request batching.

    Usage:
        service = CohereEmbeddingsService(api_key, model="embed-multilingual-v3.0")

        vector = await service.embed_text("Neo4j Cypher Grundlagen")
        vectors = await service.embed_batch(["Konzept A", "Konzept B"])
        query_vector = await service.embed_query("graph datenbank")
    """

    MAX_BATCH_SIZE = 96  # Cohere limit per request
    INPUT_TYPE_DOCUMENT = "search_document"
    INPUT_TYPE_QUERY = "search_query"

    def __init__(
        self,
        api_key: str,
        model: str = "embed-multilingual-v3.0",
        dimension: int = 1024,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._dimension = dimension
        self._client: cohere.ClientV2 | None = None

        logger.info(
            "cohere_embeddings_initialized",
            model=self._model,
            dimension=self._dimension,
        )

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def client(self) -> cohere.ClientV2:
        """Get or create the Cohere client."""
        if self._client is None:
            self._client = cohere.ClientV2(api_key=self._api_key)
        return self._client

    def _embed_sync(self, texts: list[str], input_type: str) -> list[list[float]]:
        response = self.client.embed(
            model=self._model,
            texts=texts,
            input_type=input_type,
            embedding_types=["float"],
        )
        return response.embeddings.float_

    @_retry_policy
    async def _embed_request(self, texts: list[str], input_type: str) -> list[list[float]]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            _executor,
            lambda: self._embed_sync(texts, input_type),
        )

    async def embed_text(
        self,
        text: str,
        input_type: str = INPUT_TYPE_DOCUMENT,
    ) -> list[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Text to embed.
            input_type: "search_document" for storing, "search_query" for searching.

        Raises:
            ValueError: If text is empty.
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        embedding = (await self._embed_request([text], input_type))[0]
        logger.debug(
            "cohere_embedding_generated",
            text_length=len(text),
            dimension=len(embedding),
        )
        return embedding

    async def embed_query(self, query: str) -> list[float]:
        """Embed a search query (input_type="search_query")."""
        return await self.embed_text(query, input_type=self.INPUT_TYPE_QUERY)

    async def embed_batch(
        self,
        texts: list[str],
        input_type: str = INPUT_TYPE_DOCUMENT,
    ) -> list[list[float]]:
        """
        Embed many texts, split into requests of at most MAX_BATCH_SIZE.

        Returns vectors in input order.

        Raises:
            ValueError: If any text is empty.
        """
        if not texts:
            return []
        if any(not t or not t.strip() for t in texts):
            raise ValueError("Texts cannot be empty")

        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.MAX_BATCH_SIZE):
            batch = texts[start : start + self.MAX_BATCH_SIZE]
            vectors.extend(await self._embed_request(batch, input_type))

        logger.debug("cohere_embedding_batch_completed", total_texts=len(texts))
        return vectors

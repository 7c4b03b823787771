"""
Cohere Reranker.

Scores search hits against the query with a Cohere rerank model. Used by the
"llm" search strategy; MemorySearch falls back to text scoring when the
reranker is missing or fails.
"""

from __future__ import annotations

from typing import TypedDict

import cohere
import structlog
from cohere.core import ApiError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger(__name__)


class RerankResult(TypedDict):
    """Relevance of one input document."""

    index: int
    score: float


class CohereReranker:
    """
    Async Cohere rerank client.

    Usage:
        reranker = CohereReranker(api_key)

        results = await reranker.rerank(
            "graph database",
            ["Neo4j migration notes", "A pun about sockets"],
        )
        for r in results:
            print(f"[{r['score']:.3f}] document {r['index']}")
    """

    def __init__(self, api_key: str, model: str = "rerank-v3.5") -> None:
        self._api_key = api_key
        self._model = model
        self._client: cohere.AsyncClientV2 | None = None

    @property
    def client(self) -> cohere.AsyncClientV2:
        if self._client is None:
            self._client = cohere.AsyncClientV2(api_key=self._api_key)
        return self._client

    @retry(
        retry=retry_if_exception_type((ApiError,)),
        wait=wait_exponential(multiplier=1, min=1, max=20),
        stop=stop_after_attempt(3),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "cohere_rerank_retry",
            attempt=retry_state.attempt_number,
            wait=retry_state.next_action.sleep if retry_state.next_action else 0,
        ),
    )
    async def rerank(
        self,
        query: str,
        documents: list[str],
        top_k: int | None = None,
    ) -> list[RerankResult]:
        """
        Rank documents by relevance to query.

        Empty documents are skipped; indices refer to the input list.

        Returns:
            Results sorted by score, best first.
        """
        if not query or not query.strip():
            raise ValueError("Query cannot be empty")

        valid = [(i, doc) for i, doc in enumerate(documents) if doc and doc.strip()]
        if not valid:
            return []

        texts = [doc for _, doc in valid]
        response = await self.client.rerank(
            model=self._model,
            query=query,
            documents=texts,
            top_n=min(top_k or len(texts), len(texts)),
        )

        results = [
            RerankResult(index=valid[item.index][0], score=float(item.relevance_score))
            for item in response.results
        ]
        logger.debug(
            "cohere_rerank_completed",
            documents=len(documents),
            results=len(results),
        )
        return results

"""Unit tests for the Cohere reranker."""

from types import SimpleNamespace

import pytest
from unittest.mock import AsyncMock

from mempipe.knowledge.cohere_reranker import CohereReranker


def rerank_response(*items):
    return SimpleNamespace(
        results=[SimpleNamespace(index=index, relevance_score=score) for index, score in items]
    )


class TestCohereReranker:
    """Test index mapping and input handling."""

    @pytest.fixture
    def reranker(self):
        reranker = CohereReranker("test-key", model="rerank-test")
        reranker._client = AsyncMock()
        return reranker

    @pytest.mark.asyncio
    async def test_indices_refer_to_input_list(self, reranker):
        reranker.client.rerank.return_value = rerank_response((1, 0.9), (0, 0.4))

        results = await reranker.rerank("neo4j", ["first", "  ", "third"])

        assert results == [{"index": 2, "score": 0.9}, {"index": 0, "score": 0.4}]
        reranker.client.rerank.assert_awaited_once_with(
            model="rerank-test",
            query="neo4j",
            documents=["first", "third"],
            top_n=2,
        )

    @pytest.mark.asyncio
    async def test_top_k_is_capped(self, reranker):
        reranker.client.rerank.return_value = rerank_response((0, 0.5))

        await reranker.rerank("neo4j", ["only"], top_k=10)

        assert reranker.client.rerank.await_args.kwargs["top_n"] == 1

    @pytest.mark.asyncio
    async def test_no_documents(self, reranker):
        assert await reranker.rerank("neo4j", ["", " "]) == []
        reranker.client.rerank.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_query_is_rejected(self, reranker):
        with pytest.raises(ValueError):
            await reranker.rerank(" ", ["doc"])

"""Unit tests for the semantic analyzer."""

import asyncio

import pytest
from unittest.mock import AsyncMock

from mempipe.core.circuit_breaker import CircuitBreaker
from mempipe.core.exceptions import (
    AnalysisUnavailable,
    LLMRateLimitError,
    LLMResponseError,
    LLMUnavailableError,
)
from mempipe.pipeline.analyzer import SemanticAnalyzer


def make_analyzer(backend, breaker=None, **kwargs) -> SemanticAnalyzer:
    return SemanticAnalyzer(
        backend,
        timeout=kwargs.pop("timeout", 1.0),
        max_attempts=kwargs.pop("max_attempts", 3),
        retry_wait_max=0.01,
        breaker=breaker or CircuitBreaker(name="analyzer-test", failure_threshold=5),
        **kwargs,
    )


class TestSemanticAnalyzer:
    """Test analysis validation, retries and failure mapping."""

    @pytest.mark.asyncio
    async def test_returns_validated_analysis(self, analysis_backend):
        analysis = await make_analyzer(analysis_backend).analyze("Topic", "Content")

        assert analysis.memory_type == "erlebnisse"
        assert analysis.significance_signal == 1.0
        assert [c.concept_title for c in analysis.concepts] == ["Graph storage", "Concept index"]
        analysis_backend.analyze.assert_awaited_once_with("Topic", "Content")

    @pytest.mark.asyncio
    async def test_truncates_concepts_to_max(self, analysis_backend):
        analysis = await make_analyzer(analysis_backend, max_concepts=1).analyze("t", "c")

        assert len(analysis.concepts) == 1

    @pytest.mark.asyncio
    async def test_retries_rate_limit_then_succeeds(self, analysis_payload):
        backend = AsyncMock()
        backend.analyze.side_effect = [
            LLMRateLimitError("anthropic", "slow down"),
            analysis_payload,
        ]

        analysis = await make_analyzer(backend).analyze("t", "c")

        assert analysis.confidence == 0.9
        assert backend.analyze.await_count == 2

    @pytest.mark.asyncio
    async def test_timeout_maps_to_reason(self):
        async def slow(topic, content):
            await asyncio.sleep(1)
            return {}

        backend = AsyncMock()
        backend.analyze.side_effect = slow

        with pytest.raises(AnalysisUnavailable) as exc_info:
            await make_analyzer(backend, timeout=0.01, max_attempts=2).analyze("t", "c")

        assert exc_info.value.reason == "timeout"
        assert backend.analyze.await_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(self):
        backend = AsyncMock()
        backend.analyze.side_effect = LLMRateLimitError("anthropic", "slow down")

        with pytest.raises(AnalysisUnavailable) as exc_info:
            await make_analyzer(backend, max_attempts=2).analyze("t", "c")

        assert exc_info.value.reason == "rate_limited"
        assert backend.analyze.await_count == 2

    @pytest.mark.asyncio
    async def test_malformed_payload_is_not_retried(self):
        backend = AsyncMock()
        backend.analyze.return_value = {"confidence": "very"}

        with pytest.raises(AnalysisUnavailable) as exc_info:
            await make_analyzer(backend).analyze("t", "c")

        assert exc_info.value.reason == "malformed"
        assert backend.analyze.await_count == 1

    @pytest.mark.asyncio
    async def test_response_error_is_malformed(self):
        backend = AsyncMock()
        backend.analyze.side_effect = LLMResponseError("anthropic", "no JSON object")

        with pytest.raises(AnalysisUnavailable) as exc_info:
            await make_analyzer(backend).analyze("t", "c")

        assert exc_info.value.reason == "malformed"

    @pytest.mark.asyncio
    async def test_open_circuit_short_circuits(self, analysis_backend):
        breaker = CircuitBreaker(name="open-test", failure_threshold=1, recovery_timeout=60)
        await breaker.record_failure()

        with pytest.raises(AnalysisUnavailable) as exc_info:
            await make_analyzer(analysis_backend, breaker=breaker).analyze("t", "c")

        assert exc_info.value.reason == "circuit_open"
        analysis_backend.analyze.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unavailable_failures_open_circuit(self):
        breaker = CircuitBreaker(name="trip-test", failure_threshold=2, recovery_timeout=60)
        backend = AsyncMock()
        backend.analyze.side_effect = LLMUnavailableError("anthropic", "down")
        analyzer = make_analyzer(backend, breaker=breaker, max_attempts=1)

        for _ in range(2):
            with pytest.raises(AnalysisUnavailable):
                await analyzer.analyze("t", "c")

        assert breaker.is_open is True

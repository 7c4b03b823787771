"""
Semantic Analyzer.

Wraps the LLM analysis backend with a per-attempt timeout, retries for
transient failures and a circuit breaker, then validates the payload into a
SemanticAnalysis. Every failure mode surfaces as AnalysisUnavailable so the
orchestrator has exactly one exception to degrade around.
"""

import asyncio
from typing import Any, Optional, Protocol

import structlog
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mempipe.core.circuit_breaker import CircuitBreaker, get_circuit_breaker
from mempipe.core.exceptions import (
    AnalysisUnavailable,
    LLMRateLimitError,
    LLMResponseError,
    LLMTimeoutError,
    RetryableError,
)
from mempipe.models import SemanticAnalysis
from mempipe.monitoring.metrics import record_analysis_failure

logger = structlog.get_logger(__name__)


class AnalysisBackend(Protocol):
    """LLM collaborator returning the raw analysis payload."""

    async def analyze(self, topic: str, content: str) -> dict[str, Any]: ...


def _failure_reason(error: BaseException) -> str:
    if isinstance(error, LLMTimeoutError):
        return "timeout"
    if isinstance(error, LLMRateLimitError):
        return "rate_limited"
    if isinstance(error, (LLMResponseError, PydanticValidationError)):
        return "malformed"
    return "unavailable"


class SemanticAnalyzer:
    """
    Produces one SemanticAnalysis per memory or raises AnalysisUnavailable.

    Args:
        backend: LLM collaborator.
        timeout: Seconds allowed per attempt.
        max_attempts: Attempts for retryable failures (timeouts, rate limits).
        max_concepts: Concepts kept from the payload.
        retry_wait_max: Upper bound of the exponential backoff in seconds.
        breaker: Circuit breaker shared by all analyzers of the process.
    """

    def __init__(
        self,
        backend: AnalysisBackend,
        timeout: float = 30.0,
        max_attempts: int = 3,
        max_concepts: int = 5,
        retry_wait_max: float = 10.0,
        breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self._backend = backend
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._max_concepts = max_concepts
        self._retry_wait_max = retry_wait_max
        self._breaker = breaker or get_circuit_breaker("llm", failure_threshold=5, recovery_timeout=60)

    async def _call_backend(self, topic: str, content: str) -> dict[str, Any]:
        try:
            return await asyncio.wait_for(
                self._backend.analyze(topic, content), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            raise LLMTimeoutError("analyzer", f"Analysis exceeded {self._timeout}s")

    async def _call_with_retries(self, topic: str, content: str) -> dict[str, Any]:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(RetryableError),
            wait=wait_exponential(multiplier=0.5, max=self._retry_wait_max),
            stop=stop_after_attempt(self._max_attempts),
            reraise=True,
            before_sleep=lambda retry_state: logger.warning(
                "analysis_retry",
                attempt=retry_state.attempt_number,
                error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
            ),
        )
        async for attempt in retrying:
            with attempt:
                payload = await self._call_backend(topic, content)
        return payload

    async def analyze(self, topic: str, content: str) -> SemanticAnalysis:
        """
        Analyze one memory.

        Raises:
            AnalysisUnavailable: On timeout, rate limit, unavailable backend,
                malformed output, or an open circuit.
        """
        if not self._breaker.can_execute():
            recovery_time = self._breaker.time_until_recovery()
            record_analysis_failure("circuit_open")
            raise AnalysisUnavailable(
                "circuit_open",
                f"LLM circuit breaker open. Recovery in {recovery_time:.1f}s",
            )

        try:
            payload = await self._call_with_retries(topic, content)
            analysis = SemanticAnalysis.model_validate(payload)
        except Exception as e:
            reason = _failure_reason(e)
            if reason != "malformed":
                await self._breaker.record_failure()
            record_analysis_failure(reason)
            logger.warning(
                "analysis_unavailable",
                reason=reason,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise AnalysisUnavailable(reason, f"Semantic analysis failed: {e}") from e

        await self._breaker.record_success()

        if len(analysis.concepts) > self._max_concepts:
            analysis = analysis.model_copy(
                update={"concepts": analysis.concepts[: self._max_concepts]}
            )

        logger.info(
            "memory_analyzed",
            memory_type=analysis.memory_type,
            confidence=analysis.confidence,
            concepts=len(analysis.concepts),
            category_suggestion=analysis.category_suggestion,
        )
        return analysis

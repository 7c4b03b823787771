"""
Core exception hierarchy for the memory pipeline.

Provides standardized exception types with categorization for retry logic.
Stores, the analyzer and the orchestrator raise these instead of generic
Exception so callers can decide between retrying, degrading and failing.
"""

from typing import Any, Optional


# =============================================================================
# Base Exceptions
# =============================================================================


class MempipeError(Exception):
    """Base exception for all memory pipeline errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class RetryableError(MempipeError):
    """
    Transient errors that should be retried.

    Examples: Rate limits, timeouts, temporary network issues.
    """

    pass


class PermanentError(MempipeError):
    """
    Errors that won't be fixed by retrying.

    Examples: Invalid input, malformed model output, authentication failures.
    """

    pass


# =============================================================================
# Initialization Errors
# =============================================================================


class InitializationError(PermanentError):
    """Raised when a critical component fails to initialize."""

    def __init__(self, component: str, message: str, details: Optional[dict[str, Any]] = None):
        self.component = component
        super().__init__(f"[{component}] {message}", details)


# =============================================================================
# Ingestion Errors
# =============================================================================


class ValidationError(PermanentError):
    """Raised by the ingestion gate when a memory is rejected."""

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(message, {"field": field, "value": value})


class StoreUnavailable(RetryableError):
    """Raised when the canonical record store cannot be reached."""

    def __init__(self, backend: str, message: str, details: Optional[dict[str, Any]] = None):
        self.backend = backend
        super().__init__(f"[{backend}] {message}", details)


# =============================================================================
# LLM Errors
# =============================================================================


class LLMError(MempipeError):
    """Base exception for analysis backend errors."""

    def __init__(
        self,
        provider: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ):
        self.provider = provider
        super().__init__(f"[{provider}] {message}", details)


class LLMRateLimitError(LLMError, RetryableError):
    """Raised when the LLM provider rejects a call for rate limiting."""

    pass


class LLMTimeoutError(LLMError, RetryableError):
    """Raised when an LLM call exceeds its timeout."""

    pass


class LLMUnavailableError(LLMError, RetryableError):
    """Raised when the LLM provider is temporarily unreachable."""

    pass


class LLMResponseError(LLMError, PermanentError):
    """Raised when the model returns output that cannot be parsed."""

    pass


class AnalysisUnavailable(MempipeError):
    """
    Raised by the semantic analyzer when no analysis can be produced.

    The orchestrator recovers from this locally and continues with
    canonical storage only.
    """

    def __init__(self, reason: str, message: str, details: Optional[dict[str, Any]] = None):
        self.reason = reason
        super().__init__(message, {"reason": reason, **(details or {})})


# =============================================================================
# Knowledge Store Errors
# =============================================================================


class KnowledgeStoreError(MempipeError):
    """Base exception for concept and graph store errors."""

    pass


class KnowledgeStoreConnectionError(KnowledgeStoreError, RetryableError):
    """Raised when unable to connect to a knowledge store."""

    pass


class KnowledgeStoreQueryError(KnowledgeStoreError, PermanentError):
    """Raised when a query is malformed or invalid."""

    pass


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(PermanentError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        details = {"config_key": config_key} if config_key else None
        super().__init__(message, details)


# =============================================================================
# Circuit Breaker
# =============================================================================


class CircuitBreakerOpenError(RetryableError):
    """Raised when circuit breaker is open and blocking requests."""

    def __init__(self, service: str, recovery_time: float):
        self.service = service
        self.recovery_time = recovery_time
        super().__init__(
            f"Circuit breaker open for {service}. Recovery in {recovery_time:.1f}s",
            {"service": service, "recovery_time": recovery_time},
        )

"""
Core infrastructure modules for the memory pipeline.

Provides common utilities used across the application:
- exceptions: Standardized exception hierarchy
- circuit_breaker: Resilience pattern for the LLM and graph store
- container: Dependency injection container
"""

from mempipe.core.exceptions import (
    MempipeError,
    RetryableError,
    PermanentError,
    InitializationError,
    ValidationError,
    StoreUnavailable,
    LLMError,
    LLMRateLimitError,
    LLMTimeoutError,
    LLMUnavailableError,
    LLMResponseError,
    AnalysisUnavailable,
    KnowledgeStoreError,
    KnowledgeStoreConnectionError,
    KnowledgeStoreQueryError,
    ConfigurationError,
    CircuitBreakerOpenError,
)

from mempipe.core.circuit_breaker import (
    CircuitBreaker,
    CircuitState,
    get_circuit_breaker,
    get_all_circuit_breakers,
    reset_all_circuit_breakers,
)

from mempipe.core.container import (
    DependencyContainer,
    get_container,
    initialize_container,
    shutdown_container,
)

__all__ = [
    # Exceptions
    "MempipeError",
    "RetryableError",
    "PermanentError",
    "InitializationError",
    "ValidationError",
    "StoreUnavailable",
    "LLMError",
    "LLMRateLimitError",
    "LLMTimeoutError",
    "LLMUnavailableError",
    "LLMResponseError",
    "AnalysisUnavailable",
    "KnowledgeStoreError",
    "KnowledgeStoreConnectionError",
    "KnowledgeStoreQueryError",
    "ConfigurationError",
    "CircuitBreakerOpenError",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitState",
    "get_circuit_breaker",
    "get_all_circuit_breakers",
    "reset_all_circuit_breakers",
    # Container
    "DependencyContainer",
    "get_container",
    "initialize_container",
    "shutdown_container",
]

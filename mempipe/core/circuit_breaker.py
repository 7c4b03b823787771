"""
Circuit breaker for the pipeline's external collaborators.

The LLM and the graph store sit behind breakers so that an outage turns
into fast, cheap failures (which the orchestrator degrades around) instead
of a timeout paid on every ingestion.

States:
- CLOSED: Normal operation, calls pass through
- OPEN: Collaborator failing, calls rejected immediately
- HALF_OPEN: Probing whether the collaborator recovered

Usage:
    breaker = get_circuit_breaker("llm", failure_threshold=5, recovery_timeout=60)

    if not breaker.can_execute():
        raise CircuitBreakerOpenError(breaker.name, breaker.time_until_recovery())
    try:
        result = await call_llm()
        await breaker.record_success()
    except Exception:
        await breaker.record_failure()
        raise
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import structlog

from mempipe.monitoring.metrics import (
    record_breaker_failure,
    set_breaker_state,
)

logger = structlog.get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """
    Failure counter with an open/half-open/closed state machine.

    Args:
        name: Identifier for this circuit (e.g., "llm", "neo4j")
        failure_threshold: Consecutive failures before opening
        recovery_timeout: Seconds to stay open before probing
        success_threshold: Probe successes needed to close again
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    success_threshold: int = 2

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _success_count: int = field(default=0, init=False)
    _opened_at: Optional[float] = field(default=None, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    @property
    def state(self) -> CircuitState:
        """Current state, moving OPEN to HALF_OPEN once the timeout elapsed."""
        if (
            self._state == CircuitState.OPEN
            and self._opened_at is not None
            and time.monotonic() - self._opened_at >= self.recovery_timeout
        ):
            self._transition(CircuitState.HALF_OPEN)
            self._success_count = 0
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def can_execute(self) -> bool:
        """Check if a call may be attempted."""
        return self.state != CircuitState.OPEN

    def time_until_recovery(self) -> float:
        """Seconds until the circuit may probe again."""
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return 0.0
        elapsed = time.monotonic() - self._opened_at
        return max(0.0, self.recovery_timeout - elapsed)

    def _transition(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        previous = self._state
        self._state = new_state
        if new_state == CircuitState.OPEN:
            self._opened_at = time.monotonic()
        set_breaker_state(self.name, new_state.value)
        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            "circuit_breaker_transition",
            name=self.name,
            previous=previous.value,
            state=new_state.value,
            failure_count=self._failure_count,
        )

    async def record_success(self) -> None:
        """Record a successful call."""
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    self._failure_count = 0
                    self._success_count = 0
                    self._transition(CircuitState.CLOSED)
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

    async def record_failure(self) -> None:
        """Record a failed call."""
        async with self._lock:
            self._failure_count += 1
            record_breaker_failure(self.name)

            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                self._transition(CircuitState.OPEN)

    def reset(self) -> None:
        """Force the circuit back to closed."""
        self._failure_count = 0
        self._success_count = 0
        self._opened_at = None
        self._transition(CircuitState.CLOSED)


# =============================================================================
# Registry
# =============================================================================


_circuit_breakers: dict[str, CircuitBreaker] = {}


def get_circuit_breaker(
    name: str,
    failure_threshold: int = 5,
    recovery_timeout: float = 60.0,
) -> CircuitBreaker:
    """
    Get or create a circuit breaker by name.

    Breakers are keyed by collaborator, so every client talking to the same
    backend shares one failure budget.
    """
    if name not in _circuit_breakers:
        _circuit_breakers[name] = CircuitBreaker(
            name=name,
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
        )
    return _circuit_breakers[name]


def get_all_circuit_breakers() -> dict[str, CircuitBreaker]:
    """Get all registered circuit breakers."""
    return _circuit_breakers.copy()


def reset_all_circuit_breakers() -> None:
    """Reset all circuit breakers to closed state."""
    for breaker in _circuit_breakers.values():
        breaker.reset()

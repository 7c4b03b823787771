"""Unit tests for the circuit breaker."""

import pytest

from mempipe.core.circuit_breaker import (
    CircuitBreaker,
    CircuitState,
    get_all_circuit_breakers,
    get_circuit_breaker,
    reset_all_circuit_breakers,
)


class TestCircuitBreaker:
    """Test the open/half-open/closed state machine."""

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker(name="t1", failure_threshold=3, recovery_timeout=60)

        for _ in range(3):
            await breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        assert breaker.can_execute() is False
        assert breaker.time_until_recovery() > 0

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self):
        breaker = CircuitBreaker(name="t2", failure_threshold=2)

        await breaker.record_failure()
        await breaker.record_success()
        await breaker.record_failure()

        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_after_recovery_timeout(self):
        breaker = CircuitBreaker(name="t3", failure_threshold=1, recovery_timeout=0)

        await breaker.record_failure()

        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.can_execute() is True

    @pytest.mark.asyncio
    async def test_half_open_closes_after_successes(self):
        breaker = CircuitBreaker(
            name="t4", failure_threshold=1, recovery_timeout=0, success_threshold=2
        )
        await breaker.record_failure()
        assert breaker.state == CircuitState.HALF_OPEN

        await breaker.record_success()
        await breaker.record_success()

        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self):
        breaker = CircuitBreaker(name="t5", failure_threshold=1, recovery_timeout=0)
        await breaker.record_failure()
        assert breaker.state == CircuitState.HALF_OPEN

        breaker.recovery_timeout = 60
        await breaker.record_failure()

        assert breaker.state == CircuitState.OPEN


class TestCircuitBreakerRegistry:
    """Test the process-wide registry."""

    def test_same_name_returns_same_breaker(self):
        assert get_circuit_breaker("registry-test") is get_circuit_breaker("registry-test")
        assert "registry-test" in get_all_circuit_breakers()

    @pytest.mark.asyncio
    async def test_reset_all(self):
        breaker = get_circuit_breaker("reset-test", failure_threshold=1)
        await breaker.record_failure()
        assert breaker.is_open is True

        reset_all_circuit_breakers()

        assert breaker.state == CircuitState.CLOSED

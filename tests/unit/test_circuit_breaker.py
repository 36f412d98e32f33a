"""Unit tests for the circuit breaker."""

from __future__ import annotations

import asyncio

import pytest

from faultline.core.config import Settings
from faultline.core.exceptions import CircuitBreakerOpenError, ConfigurationError
from faultline.core.types import CircuitState
from faultline.resilience.circuit_breaker import (
    CircuitBreaker,
    get_circuit_breaker_registry,
    with_circuit_breaker,
)


class CodedError(Exception):
    """Error carrying an application code."""

    def __init__(self, code: str) -> None:
        super().__init__(code)
        self.code = code


async def failing() -> None:
    raise RuntimeError("fail")


async def succeeding() -> str:
    return "ok"


class TestCircuitBreakerConstruction:
    """Tests for CircuitBreaker construction."""

    def test_starts_closed(self):
        """Test a new breaker is closed with no failures."""
        cb = CircuitBreaker("svc", failure_threshold=3, recovery_timeout=1.0)
        assert cb.state == CircuitState.CLOSED
        assert cb.get_state() == CircuitState.CLOSED
        assert cb.get_failure_count() == 0
        assert cb.is_closed

    def test_invalid_threshold(self):
        """Test a threshold below one is rejected."""
        with pytest.raises(ConfigurationError):
            CircuitBreaker("svc", failure_threshold=0)

    def test_from_settings(self):
        """Test defaults come from settings, overrides win."""
        settings = Settings()
        settings.circuit_breaker.failure_threshold = 7
        cb = CircuitBreaker.from_settings("svc", settings, recovery_timeout=2.0)
        stats = cb.get_stats()
        assert stats["failure_threshold"] == 7
        assert stats["recovery_timeout_seconds"] == 2.0


@pytest.mark.asyncio
class TestCircuitBreakerStates:
    """Tests for the closed/open/half-open state machine."""

    async def test_executes_in_closed_state(self, flaky):
        """Test calls pass through with their arguments."""
        op = flaky(0, result="result")
        cb = CircuitBreaker("svc", failure_threshold=3, recovery_timeout=1.0)

        result = await cb.execute(op, "arg", key="value")

        assert result == "result"
        assert op.call_args == [(("arg",), {"key": "value"})]

    async def test_opens_exactly_at_threshold(self):
        """Test the breaker opens on the Nth consecutive failure, not before."""
        cb = CircuitBreaker("svc", failure_threshold=3, recovery_timeout=1.0)

        for expected_count in (1, 2):
            with pytest.raises(RuntimeError):
                await cb.execute(failing)
            assert cb.state == CircuitState.CLOSED
            assert cb.failure_count == expected_count

        with pytest.raises(RuntimeError):
            await cb.execute(failing)
        assert cb.state == CircuitState.OPEN

    async def test_success_resets_consecutive_failures(self):
        """Test a success in closed state clears the failure count."""
        cb = CircuitBreaker("svc", failure_threshold=2, recovery_timeout=1.0)

        with pytest.raises(RuntimeError):
            await cb.execute(failing)
        await cb.execute(succeeding)
        with pytest.raises(RuntimeError):
            await cb.execute(failing)

        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 1

    async def test_rejects_without_calling_when_open(self, flaky, clock):
        """Test open breaker rejects before recovery without invoking the operation."""
        op = flaky(10)
        cb = CircuitBreaker("svc", failure_threshold=1, recovery_timeout=1.0, clock=clock)

        with pytest.raises(ValueError):
            await cb.execute(op)
        assert op.calls == 1

        clock.advance(0.5)
        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            await cb.execute(op)

        assert op.calls == 1
        assert exc_info.value.circuit_name == "svc"
        assert exc_info.value.retry_after == pytest.approx(0.5)

    async def test_recovers_after_timeout(self, flaky, clock):
        """Test a successful trial after recovery_timeout closes the breaker."""
        op = flaky(1, result="ok")
        cb = CircuitBreaker("svc", failure_threshold=1, recovery_timeout=1.0, clock=clock)

        with pytest.raises(ValueError):
            await cb.execute(op)
        assert cb.state == CircuitState.OPEN

        clock.advance(1.0)
        assert await cb.execute(op) == "ok"

        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    async def test_failed_trial_reopens(self, clock):
        """Test a failing half-open trial reopens and restarts the recovery timer."""
        transitions = []
        cb = CircuitBreaker(
            "svc",
            failure_threshold=1,
            recovery_timeout=1.0,
            clock=clock,
            on_state_change=lambda old, new: transitions.append((old, new)),
        )

        with pytest.raises(RuntimeError):
            await cb.execute(failing)
        clock.advance(1.0)
        with pytest.raises(RuntimeError):
            await cb.execute(failing)

        assert cb.state == CircuitState.OPEN
        assert cb.last_failure_time == clock.now
        assert transitions == [
            (CircuitState.CLOSED, CircuitState.OPEN),
            (CircuitState.OPEN, CircuitState.HALF_OPEN),
            (CircuitState.HALF_OPEN, CircuitState.OPEN),
        ]

        clock.advance(0.5)
        with pytest.raises(CircuitBreakerOpenError):
            await cb.execute(succeeding)

    async def test_single_trial_in_half_open(self, clock):
        """Test only one trial call runs while recovering."""
        gate = asyncio.Event()

        async def slow() -> str:
            await gate.wait()
            return "ok"

        cb = CircuitBreaker("svc", failure_threshold=1, recovery_timeout=1.0, clock=clock)
        with pytest.raises(RuntimeError):
            await cb.execute(failing)
        clock.advance(1.0)

        trial = asyncio.create_task(cb.execute(slow))
        await asyncio.sleep(0)
        assert cb.state == CircuitState.HALF_OPEN

        with pytest.raises(CircuitBreakerOpenError):
            await cb.execute(succeeding)

        gate.set()
        assert await trial == "ok"
        assert cb.state == CircuitState.CLOSED

    async def test_late_outcomes_ignored_in_half_open(self, clock):
        """Test calls admitted before opening cannot decide the trial."""
        early_gate = asyncio.Event()
        trial_gate = asyncio.Event()

        async def early(fail: bool) -> str:
            await early_gate.wait()
            if fail:
                raise RuntimeError("late")
            return "late"

        async def trial_call() -> str:
            await trial_gate.wait()
            raise RuntimeError("trial failed")

        cb = CircuitBreaker("svc", failure_threshold=1, recovery_timeout=1.0, clock=clock)
        late_success = asyncio.create_task(cb.execute(early, False))
        late_failure = asyncio.create_task(cb.execute(early, True))
        await asyncio.sleep(0)

        with pytest.raises(RuntimeError):
            await cb.execute(failing)
        assert cb.state == CircuitState.OPEN
        clock.advance(1.0)

        trial = asyncio.create_task(cb.execute(trial_call))
        await asyncio.sleep(0)
        assert cb.state == CircuitState.HALF_OPEN

        early_gate.set()
        assert await late_success == "late"
        with pytest.raises(RuntimeError):
            await late_failure
        assert cb.state == CircuitState.HALF_OPEN

        with pytest.raises(CircuitBreakerOpenError):
            await cb.execute(succeeding)

        trial_gate.set()
        with pytest.raises(RuntimeError, match="trial failed"):
            await trial
        assert cb.state == CircuitState.OPEN

    async def test_on_state_change_called(self):
        """Test the callback receives (old, new) when opening."""
        transitions = []
        cb = CircuitBreaker(
            "svc",
            failure_threshold=1,
            recovery_timeout=1.0,
            on_state_change=lambda old, new: transitions.append((old, new)),
        )

        with pytest.raises(RuntimeError):
            await cb.execute(failing)

        assert transitions == [(CircuitState.CLOSED, CircuitState.OPEN)]

    async def test_custom_is_failure(self):
        """Test errors rejected by is_failure do not count."""

        async def retryable() -> None:
            raise CodedError("RETRY")

        cb = CircuitBreaker(
            "svc",
            failure_threshold=1,
            recovery_timeout=1.0,
            is_failure=lambda err: getattr(err, "code", None) != "RETRY",
        )

        with pytest.raises(CodedError) as exc_info:
            await cb.execute(retryable)

        assert exc_info.value.code == "RETRY"
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    async def test_reset(self):
        """Test reset forces closed with zero failures."""
        transitions = []
        cb = CircuitBreaker(
            "svc",
            failure_threshold=1,
            recovery_timeout=60.0,
            on_state_change=lambda old, new: transitions.append((old, new)),
        )

        with pytest.raises(RuntimeError):
            await cb.execute(failing)
        cb.reset()

        assert cb.get_state() == CircuitState.CLOSED
        assert cb.get_failure_count() == 0
        assert transitions[-1] == (CircuitState.OPEN, CircuitState.CLOSED)
        assert await cb.execute(succeeding) == "ok"


@pytest.mark.asyncio
class TestWithCircuitBreaker:
    """Tests for the with_circuit_breaker wrapper."""

    async def test_wraps_function(self, flaky):
        """Test the wrapper forwards arguments and exposes its breaker."""
        op = flaky(0, result="result")
        protected = with_circuit_breaker(op, failure_threshold=3, recovery_timeout=1.0)

        assert await protected("arg") == "result"
        assert op.call_args[0][0] == ("arg",)
        assert protected.breaker.state == CircuitState.CLOSED

    async def test_shares_given_breaker(self):
        """Test two wrappers can share one breaker."""
        cb = CircuitBreaker("shared", failure_threshold=1, recovery_timeout=60.0)
        first = with_circuit_breaker(failing, breaker=cb)
        second = with_circuit_breaker(succeeding, breaker=cb)

        with pytest.raises(RuntimeError):
            await first()
        with pytest.raises(CircuitBreakerOpenError):
            await second()


class TestCircuitBreakerRegistry:
    """Tests for CircuitBreakerRegistry."""

    def test_get_or_create(self):
        """Test the same name returns the same breaker."""
        registry = get_circuit_breaker_registry()
        first = registry.get("payments", failure_threshold=2)
        second = registry.get("payments", failure_threshold=9)

        assert first is second
        assert first.get_stats()["failure_threshold"] == 2
        assert "payments" in registry.get_all()

    def test_stats_and_reset_all(self):
        """Test aggregate stats and bulk reset."""
        registry = get_circuit_breaker_registry()
        registry.get("a")
        registry.get("b")

        stats = registry.get_stats()
        assert set(stats) == {"a", "b"}
        assert stats["a"]["state"] == "closed"

        registry.reset_all()
        assert all(b.is_closed for b in registry.get_all().values())

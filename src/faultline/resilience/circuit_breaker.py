"""Circuit breaker implementation for fault isolation."""

from __future__ import annotations

import asyncio
import functools
import time
from typing import Any, Callable, NamedTuple

from faultline.core.config import Settings, get_settings
from faultline.core.exceptions import CircuitBreakerOpenError, ConfigurationError
from faultline.core.types import CircuitState
from faultline.observability.logging import get_logger
from faultline.observability.metrics import get_metrics_collector
from faultline.resilience._utils import invoke

logger = get_logger(__name__)

StateChangeCallback = Callable[[CircuitState, CircuitState], Any]
FailurePredicate = Callable[[BaseException], bool]


class _Admission(NamedTuple):
    """State generation a call was let in under."""

    generation: int
    trial: bool


class CircuitBreaker:
    """
    Circuit breaker for protecting against cascading failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: Too many failures, requests are rejected
    - HALF_OPEN: Testing recovery, limited requests allowed

    All state changes happen synchronously between awaits, so a breaker
    needs no lock as long as it is used from a single event loop.
    """

    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        on_state_change: StateChangeCallback | None = None,
        is_failure: FailurePredicate | None = None,
        success_threshold: int = 1,
        half_open_max_calls: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize circuit breaker.

        Args:
            name: Circuit breaker name.
            failure_threshold: Consecutive failures before opening.
            recovery_timeout: Seconds before transitioning open -> half-open.
            on_state_change: Called with (old_state, new_state) on transitions.
            is_failure: Decides whether an error counts against the circuit.
            success_threshold: Successes in half-open to close.
            half_open_max_calls: Max concurrent trial calls in half-open state.
            clock: Monotonic time source.
        """
        if failure_threshold < 1:
            raise ConfigurationError(
                "failure_threshold must be at least 1",
                {"failure_threshold": failure_threshold},
            )
        if recovery_timeout < 0:
            raise ConfigurationError(
                "recovery_timeout must not be negative",
                {"recovery_timeout": recovery_timeout},
            )

        self._name = name
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._on_state_change = on_state_change
        self._is_failure = is_failure
        self._success_threshold = max(1, success_threshold)
        self._half_open_max_calls = max(1, half_open_max_calls)
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: float | None = None
        self._half_open_calls = 0
        self._generation = 0

        self._metrics = get_metrics_collector()
        self._metrics.set_circuit_state(name, self._state)

    @classmethod
    def from_settings(
        cls,
        name: str = "default",
        settings: Settings | None = None,
        **overrides: Any,
    ) -> CircuitBreaker:
        """Build a breaker from configured defaults, with explicit overrides."""
        config = (settings or get_settings()).circuit_breaker
        options: dict[str, Any] = {
            "failure_threshold": config.failure_threshold,
            "recovery_timeout": config.recovery_timeout,
            "success_threshold": config.success_threshold,
            "half_open_max_calls": config.half_open_max_calls,
        }
        options.update(overrides)
        return cls(name=name, **options)

    @property
    def name(self) -> str:
        """Get circuit breaker name."""
        return self._name

    @property
    def state(self) -> CircuitState:
        """Get current state."""
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def success_count(self) -> int:
        return self._success_count

    @property
    def last_failure_time(self) -> float | None:
        return self._last_failure_time

    @property
    def is_closed(self) -> bool:
        """Check if circuit is closed."""
        return self._state == CircuitState.CLOSED

    def get_state(self) -> CircuitState:
        return self._state

    def get_failure_count(self) -> int:
        return self._failure_count

    async def execute(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Execute a function with circuit breaker protection.

        Args:
            func: Function to execute.
            *args: Positional arguments.
            **kwargs: Keyword arguments.

        Returns:
            Function result.

        Raises:
            CircuitBreakerOpenError: If circuit is open.
        """
        admission = self._admit()

        try:
            result = await invoke(func, *args, **kwargs)
        except Exception as e:
            self._record_error(e, admission)
            raise
        except asyncio.CancelledError:
            self._release_trial(admission)
            raise

        self._record_success(admission)
        return result

    def _admit(self) -> _Admission:
        """
        Check and potentially transition state before a call.

        Returns:
            The generation the call was admitted under, and whether it
            occupies a half-open trial slot.
        """
        if self._state == CircuitState.OPEN:
            elapsed = self._clock() - (self._last_failure_time or 0.0)
            if elapsed < self._recovery_timeout:
                self._reject(self._recovery_timeout - elapsed)
            self._transition(CircuitState.HALF_OPEN)

        if self._state == CircuitState.HALF_OPEN:
            if self._half_open_calls >= self._half_open_max_calls:
                self._reject(None)
            self._half_open_calls += 1
            return _Admission(self._generation, True)

        return _Admission(self._generation, False)

    def _reject(self, retry_after: float | None) -> None:
        self._metrics.record_circuit_rejection(self._name)
        raise CircuitBreakerOpenError(self._name, self._failure_count, retry_after)

    def _is_stale(self, admission: _Admission) -> bool:
        return admission.generation != self._generation

    def _release_trial(self, admission: _Admission) -> None:
        if admission.trial and not self._is_stale(admission):
            self._half_open_calls = max(0, self._half_open_calls - 1)

    def _record_success(self, admission: _Admission) -> None:
        """Record a successful call."""
        if self._is_stale(admission):
            # Admitted under an earlier state; its outcome says nothing now
            return

        if self._state == CircuitState.HALF_OPEN:
            self._release_trial(admission)
            self._success_count += 1
            if self._success_count >= self._success_threshold:
                self._transition(CircuitState.CLOSED)

        elif self._state == CircuitState.CLOSED:
            # Only consecutive failures count
            self._failure_count = 0

    def _record_error(self, error: Exception, admission: _Admission) -> None:
        """Record a failed call."""
        if self._is_stale(admission):
            return

        if self._is_failure is not None and not self._is_failure(error):
            self._release_trial(admission)
            return

        self._failure_count += 1
        self._last_failure_time = self._clock()
        self._metrics.record_circuit_failure(self._name)

        if self._state == CircuitState.HALF_OPEN:
            # Any failure in half-open goes back to open
            self._transition(CircuitState.OPEN)

        elif self._failure_count >= self._failure_threshold:
            self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._generation += 1
        self._success_count = 0
        self._half_open_calls = 0

        if new_state == CircuitState.OPEN:
            self._last_failure_time = self._clock()
            logger.warning(
                "Circuit breaker opened",
                name=self._name,
                failures=self._failure_count,
            )
        elif new_state == CircuitState.HALF_OPEN:
            logger.info("Circuit breaker half-open", name=self._name)
        else:
            self._failure_count = 0
            logger.info("Circuit breaker closed", name=self._name)

        self._metrics.set_circuit_state(self._name, new_state)

        if self._on_state_change is not None:
            self._on_state_change(old_state, new_state)

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        old_state = self._state
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time = None
        self._half_open_calls = 0
        self._generation += 1
        self._metrics.set_circuit_state(self._name, self._state)

        logger.info("Circuit breaker reset", name=self._name)
        if old_state != CircuitState.CLOSED and self._on_state_change is not None:
            self._on_state_change(old_state, CircuitState.CLOSED)

    def get_stats(self) -> dict[str, Any]:
        """Get circuit breaker statistics."""
        return {
            "name": self._name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "failure_threshold": self._failure_threshold,
            "success_threshold": self._success_threshold,
            "recovery_timeout_seconds": self._recovery_timeout,
            "last_failure_time": self._last_failure_time,
        }


class CircuitBreakerRegistry:
    """
    Registry for managing multiple circuit breakers.

    Typically one breaker per protected resource.
    """

    def __init__(self) -> None:
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, name: str, **options: Any) -> CircuitBreaker:
        """
        Get or create a circuit breaker.

        Options only apply when the breaker is created; an existing
        breaker is returned unchanged.
        """
        if name not in self._breakers:
            self._breakers[name] = CircuitBreaker.from_settings(name, **options)

        return self._breakers[name]

    def get_all(self) -> dict[str, CircuitBreaker]:
        """Get all circuit breakers."""
        return self._breakers.copy()

    def get_stats(self) -> dict[str, dict[str, Any]]:
        """Get statistics for all breakers."""
        return {
            name: breaker.get_stats()
            for name, breaker in self._breakers.items()
        }

    def reset_all(self) -> None:
        """Reset all circuit breakers."""
        for breaker in self._breakers.values():
            breaker.reset()


# Global registry
_registry: CircuitBreakerRegistry | None = None


def get_circuit_breaker_registry() -> CircuitBreakerRegistry:
    """Get the global circuit breaker registry."""
    global _registry
    if _registry is None:
        _registry = CircuitBreakerRegistry()
    return _registry


def with_circuit_breaker(
    func: Callable[..., Any],
    breaker: CircuitBreaker | None = None,
    **options: Any,
) -> Callable[..., Any]:
    """
    Wrap *func* so every call goes through a circuit breaker.

    The breaker is available as ``wrapper.breaker``.
    """
    if breaker is None:
        options.setdefault("name", getattr(func, "__name__", "default"))
        breaker = CircuitBreaker(**options)

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        return await breaker.execute(func, *args, **kwargs)

    wrapper.breaker = breaker  # type: ignore[attr-defined]
    return wrapper

"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
from typing import Generator

import pytest

from faultline.core.config import configure_settings
from faultline.resilience.circuit_breaker import get_circuit_breaker_registry

# Keep test runs independent of the developer's environment
os.environ.setdefault("OBSERVABILITY_LOG_FORMAT", "console")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """A fake clock for simulating elapsed time."""
    return FakeClock()


@pytest.fixture(autouse=True)
def reset_globals() -> Generator[None, None, None]:
    """Drop cached settings and registered breakers between tests."""
    configure_settings(None)
    yield
    configure_settings(None)
    registry = get_circuit_breaker_registry()
    registry._breakers.clear()


class Flaky:
    """Async callable failing a fixed number of times before succeeding."""

    def __init__(self, failures: int, result: str = "success", error: type[Exception] = ValueError) -> None:
        self.failures = failures
        self.result = result
        self.error = error
        self.calls = 0
        self.call_args: list[tuple] = []

    async def __call__(self, *args, **kwargs) -> str:
        self.calls += 1
        self.call_args.append((args, kwargs))
        if self.calls <= self.failures:
            raise self.error(f"fail{self.calls}")
        return self.result


@pytest.fixture
def flaky():
    """Factory for Flaky operations."""
    return Flaky

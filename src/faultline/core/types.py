"""Shared enums and type definitions for faultline."""

from __future__ import annotations

from enum import Enum
from typing import Any


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing if recovered


class BackoffStrategy(str, Enum):
    """Delay growth between retry attempts."""

    CONSTANT = "constant"
    EXPONENTIAL = "exponential"


class HealthStatus(str, Enum):
    """Aggregate health status."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthCheckResult:
    """Outcome of a single health probe."""

    def __init__(
        self,
        healthy: bool,
        latency: float,
        timestamp: float,
        error: str | None = None,
    ) -> None:
        self.healthy = healthy
        self.latency = latency
        self.timestamp = timestamp
        self.error = error

    @property
    def status(self) -> HealthStatus:
        return HealthStatus.HEALTHY if self.healthy else HealthStatus.UNHEALTHY

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data: dict[str, Any] = {
            "healthy": self.healthy,
            "status": self.status.value,
            "latency_ms": round(self.latency * 1000, 2),
            "timestamp": self.timestamp,
        }
        if self.error is not None:
            data["error"] = self.error
        return data

    def __repr__(self) -> str:
        return (
            f"HealthCheckResult(healthy={self.healthy}, "
            f"latency={self.latency:.4f}, error={self.error!r})"
        )

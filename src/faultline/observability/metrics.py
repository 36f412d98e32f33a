"""Prometheus metrics for resilience primitives."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

from faultline.core.config import get_settings
from faultline.core.types import CircuitState
from faultline.observability.logging import get_logger

logger = get_logger(__name__)

# Create a custom registry
REGISTRY = CollectorRegistry()

# Circuit breaker metrics
CIRCUIT_BREAKER_STATE = Gauge(
    "faultline_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half-open, 2=open)",
    ["name"],
    registry=REGISTRY,
)

CIRCUIT_BREAKER_FAILURES = Counter(
    "faultline_circuit_breaker_failures_total",
    "Failures counted against circuit breakers",
    ["name"],
    registry=REGISTRY,
)

CIRCUIT_BREAKER_REJECTIONS = Counter(
    "faultline_circuit_breaker_rejections_total",
    "Calls rejected by an open circuit",
    ["name"],
    registry=REGISTRY,
)

# Retry metrics
RETRY_ATTEMPTS = Counter(
    "faultline_retry_attempts_total",
    "Retries scheduled after a failed attempt",
    ["operation"],
    registry=REGISTRY,
)

RETRY_EXHAUSTED = Counter(
    "faultline_retry_exhausted_total",
    "Operations that failed after all attempts",
    ["operation"],
    registry=REGISTRY,
)

# Rate limiter metrics
RATE_LIMIT_DECISIONS = Counter(
    "faultline_rate_limit_decisions_total",
    "Rate limiter admission decisions",
    ["name", "decision"],
    registry=REGISTRY,
)

RATE_LIMIT_QUEUE = Gauge(
    "faultline_rate_limit_queue_size",
    "Callers waiting for a rate limiter token",
    ["name"],
    registry=REGISTRY,
)

# Bulkhead metrics
BULKHEAD_RUNNING = Gauge(
    "faultline_bulkhead_running",
    "Calls currently running inside a bulkhead",
    ["name"],
    registry=REGISTRY,
)

BULKHEAD_QUEUE = Gauge(
    "faultline_bulkhead_queue_size",
    "Calls waiting for a bulkhead slot",
    ["name"],
    registry=REGISTRY,
)

BULKHEAD_REJECTIONS = Counter(
    "faultline_bulkhead_rejections_total",
    "Calls rejected by a full bulkhead",
    ["name"],
    registry=REGISTRY,
)

# Timeout / fallback metrics
TIMEOUTS_TOTAL = Counter(
    "faultline_timeouts_total",
    "Operations abandoned after their deadline",
    ["operation"],
    registry=REGISTRY,
)

FALLBACKS_TOTAL = Counter(
    "faultline_fallbacks_total",
    "Fallback values substituted for failed operations",
    ["operation"],
    registry=REGISTRY,
)

# Health check metrics
HEALTH_CHECK_LATENCY = Histogram(
    "faultline_health_check_latency_seconds",
    "Health probe latency",
    ["name"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    registry=REGISTRY,
)

HEALTH_CHECK_STATUS = Gauge(
    "faultline_health_check_healthy",
    "Last health probe outcome (1=healthy, 0=unhealthy)",
    ["name"],
    registry=REGISTRY,
)

_STATE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


class MetricsCollector:
    """
    Records resilience metrics.

    All methods are no-ops when metrics are disabled in settings.
    """

    def __init__(self, enabled: bool | None = None) -> None:
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        if self._enabled is None:
            return get_settings().observability.metrics_enabled
        return self._enabled

    # Circuit breaker metrics

    def set_circuit_state(self, name: str, state: CircuitState) -> None:
        if self.enabled:
            CIRCUIT_BREAKER_STATE.labels(name=name).set(_STATE_VALUES[state])

    def record_circuit_failure(self, name: str) -> None:
        if self.enabled:
            CIRCUIT_BREAKER_FAILURES.labels(name=name).inc()

    def record_circuit_rejection(self, name: str) -> None:
        if self.enabled:
            CIRCUIT_BREAKER_REJECTIONS.labels(name=name).inc()

    # Retry metrics

    def record_retry(self, operation: str) -> None:
        if self.enabled:
            RETRY_ATTEMPTS.labels(operation=operation).inc()

    def record_retry_exhausted(self, operation: str) -> None:
        if self.enabled:
            RETRY_EXHAUSTED.labels(operation=operation).inc()

    # Rate limiter metrics

    def record_rate_limit(self, name: str, admitted: bool) -> None:
        if self.enabled:
            decision = "admitted" if admitted else "rejected"
            RATE_LIMIT_DECISIONS.labels(name=name, decision=decision).inc()

    def set_rate_limit_queue(self, name: str, size: int) -> None:
        if self.enabled:
            RATE_LIMIT_QUEUE.labels(name=name).set(size)

    # Bulkhead metrics

    def set_bulkhead_usage(self, name: str, running: int, queued: int) -> None:
        if self.enabled:
            BULKHEAD_RUNNING.labels(name=name).set(running)
            BULKHEAD_QUEUE.labels(name=name).set(queued)

    def record_bulkhead_rejection(self, name: str) -> None:
        if self.enabled:
            BULKHEAD_REJECTIONS.labels(name=name).inc()

    # Timeout / fallback metrics

    def record_timeout(self, operation: str) -> None:
        if self.enabled:
            TIMEOUTS_TOTAL.labels(operation=operation).inc()

    def record_fallback(self, operation: str) -> None:
        if self.enabled:
            FALLBACKS_TOTAL.labels(operation=operation).inc()

    # Health check metrics

    def record_health_check(self, name: str, healthy: bool, latency: float) -> None:
        if self.enabled:
            HEALTH_CHECK_LATENCY.labels(name=name).observe(latency)
            HEALTH_CHECK_STATUS.labels(name=name).set(1 if healthy else 0)


# Global collector
_collector: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector."""
    global _collector
    if _collector is None:
        _collector = MetricsCollector()
    return _collector


def generate_metrics() -> bytes:
    """Render all metrics in the Prometheus text format."""
    return generate_latest(REGISTRY)

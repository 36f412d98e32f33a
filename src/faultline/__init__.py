"""faultline - Async fault-tolerance primitives."""

from faultline.core.config import Settings
from faultline.core.exceptions import (
    AbortError,
    BulkheadFullError,
    CircuitBreakerOpenError,
    FaultlineError,
    RateLimitExceededError,
    RetryError,
    TimeoutError,
)
from faultline.core.types import BackoffStrategy, CircuitState, HealthCheckResult
from faultline.resilience import (
    Bulkhead,
    CircuitBreaker,
    HealthChecker,
    RateLimiter,
    RetryPolicy,
    create_health_check,
    fallback,
    hedge,
    resilient,
    retry,
    timeout,
    with_bulkhead,
    with_circuit_breaker,
    with_fallback,
    with_rate_limit,
    with_retry,
    with_timeout,
)

__version__ = "1.0.0"
__all__ = [
    "Settings",
    "FaultlineError",
    "AbortError",
    "BulkheadFullError",
    "CircuitBreakerOpenError",
    "RateLimitExceededError",
    "RetryError",
    "TimeoutError",
    "BackoffStrategy",
    "CircuitState",
    "HealthCheckResult",
    "Bulkhead",
    "CircuitBreaker",
    "HealthChecker",
    "RateLimiter",
    "RetryPolicy",
    "create_health_check",
    "fallback",
    "hedge",
    "resilient",
    "retry",
    "timeout",
    "with_bulkhead",
    "with_circuit_breaker",
    "with_fallback",
    "with_rate_limit",
    "with_retry",
    "with_timeout",
    "__version__",
]

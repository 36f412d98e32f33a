"""Resilience module for fault tolerance."""

from faultline.resilience.bulkhead import Bulkhead, with_bulkhead
from faultline.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    get_circuit_breaker_registry,
    with_circuit_breaker,
)
from faultline.resilience.composition import resilient
from faultline.resilience.fallback import fallback, hedge, with_fallback
from faultline.resilience.health import HealthChecker, create_health_check
from faultline.resilience.rate_limiter import RateLimiter, with_rate_limit
from faultline.resilience.retry import RetryPolicy, retry, with_retry
from faultline.resilience.timeout import timeout, with_timeout

__all__ = [
    "Bulkhead",
    "with_bulkhead",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "get_circuit_breaker_registry",
    "with_circuit_breaker",
    "resilient",
    "fallback",
    "hedge",
    "with_fallback",
    "HealthChecker",
    "create_health_check",
    "RateLimiter",
    "with_rate_limit",
    "RetryPolicy",
    "retry",
    "with_retry",
    "timeout",
    "with_timeout",
]

"""Core configuration, types and exceptions."""

from faultline.core.config import Settings, configure_settings, get_settings
from faultline.core.exceptions import (
    AbortError,
    BulkheadFullError,
    CircuitBreakerOpenError,
    ConfigurationError,
    FaultlineError,
    RateLimitExceededError,
    RetryError,
    TimeoutError,
)
from faultline.core.types import BackoffStrategy, CircuitState, HealthCheckResult, HealthStatus

__all__ = [
    "Settings",
    "get_settings",
    "configure_settings",
    "FaultlineError",
    "ConfigurationError",
    "CircuitBreakerOpenError",
    "RetryError",
    "AbortError",
    "RateLimitExceededError",
    "BulkheadFullError",
    "TimeoutError",
    "BackoffStrategy",
    "CircuitState",
    "HealthCheckResult",
    "HealthStatus",
]

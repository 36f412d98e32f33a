"""Exception hierarchy for faultline."""

from __future__ import annotations

from typing import Any


class FaultlineError(Exception):
    """Base exception for all faultline errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


# Configuration Errors
class ConfigurationError(FaultlineError):
    """Invalid options passed to a resilience primitive."""

    pass


# Circuit Breaker Errors
class CircuitBreakerOpenError(FaultlineError):
    """Call rejected without being attempted because the circuit is open."""

    def __init__(
        self,
        circuit_name: str,
        failure_count: int,
        retry_after: float | None = None,
    ) -> None:
        details: dict[str, Any] = {
            "circuit_name": circuit_name,
            "failure_count": failure_count,
        }
        if retry_after is not None:
            details["retry_after_seconds"] = round(retry_after, 3)
        super().__init__(f"Circuit breaker '{circuit_name}' is open", details)
        self.circuit_name = circuit_name
        self.failure_count = failure_count
        self.retry_after = retry_after


# Retry Errors
class RetryError(FaultlineError):
    """All attempts exhausted, or the last error was not retryable."""

    def __init__(self, attempts: int, last_error: BaseException | None = None) -> None:
        details: dict[str, Any] = {"attempts": attempts}
        if last_error is not None:
            details["last_error"] = str(last_error)
        super().__init__(f"Operation failed after {attempts} attempt(s)", details)
        self.attempts = attempts
        self.last_error = last_error


class AbortError(FaultlineError):
    """Operation cancelled through its abort signal."""

    def __init__(self, message: str = "Operation aborted") -> None:
        super().__init__(message)


# Admission Errors
class RateLimitExceededError(FaultlineError):
    """Rate limiter refused to admit a call."""

    def __init__(
        self,
        limiter_name: str,
        retry_after: float | None = None,
        reason: str = "rate limit exceeded",
    ) -> None:
        details: dict[str, Any] = {"limiter_name": limiter_name, "reason": reason}
        if retry_after is not None:
            details["retry_after_seconds"] = round(retry_after, 3)
        super().__init__(f"Rate limit exceeded for '{limiter_name}'", details)
        self.limiter_name = limiter_name
        self.retry_after = retry_after


class BulkheadFullError(FaultlineError):
    """Concurrency slots and wait queue are both full."""

    def __init__(self, bulkhead_name: str, max_concurrent: int, max_queue: int) -> None:
        super().__init__(
            f"Bulkhead '{bulkhead_name}' is full",
            {
                "bulkhead_name": bulkhead_name,
                "max_concurrent": max_concurrent,
                "max_queue": max_queue,
            },
        )
        self.bulkhead_name = bulkhead_name
        self.max_concurrent = max_concurrent
        self.max_queue = max_queue


# Timeout Errors
class TimeoutError(FaultlineError):
    """Deadline elapsed before the operation settled."""

    def __init__(self, timeout_seconds: float, operation: str | None = None) -> None:
        details: dict[str, Any] = {"timeout_seconds": timeout_seconds}
        if operation:
            details["operation"] = operation
        super().__init__(f"Operation timed out after {timeout_seconds}s", details)
        self.timeout_seconds = timeout_seconds

"""Unit tests for settings and exceptions."""

from __future__ import annotations

import pytest

from faultline.core.config import Settings, configure_settings, get_settings
from faultline.core.exceptions import (
    AbortError,
    BulkheadFullError,
    CircuitBreakerOpenError,
    FaultlineError,
    RetryError,
    TimeoutError,
)
from faultline.core.types import BackoffStrategy


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        """Test default values."""
        settings = Settings()

        assert settings.circuit_breaker.failure_threshold == 5
        assert settings.circuit_breaker.recovery_timeout == 30.0
        assert settings.retry.max_attempts == 3
        assert settings.retry.backoff == BackoffStrategy.EXPONENTIAL
        assert settings.rate_limit.queue_excess is False
        assert settings.bulkhead.max_queue == 100
        assert settings.observability.metrics_enabled is True

    def test_env_override(self, monkeypatch):
        """Test section values are read from prefixed environment variables."""
        monkeypatch.setenv("CIRCUIT_BREAKER_FAILURE_THRESHOLD", "7")
        monkeypatch.setenv("RETRY_BACKOFF", "constant")

        settings = Settings()

        assert settings.circuit_breaker.failure_threshold == 7
        assert settings.retry.backoff == BackoffStrategy.CONSTANT

    def test_invalid_env_value(self, monkeypatch):
        """Test out-of-range values fail validation."""
        monkeypatch.setenv("BULKHEAD_MAX_CONCURRENT", "0")

        with pytest.raises(ValueError):
            Settings()

    def test_configure_settings(self):
        """Test the global instance can be replaced."""
        custom = Settings()
        custom.retry.max_attempts = 9
        configure_settings(custom)

        assert get_settings() is custom
        assert get_settings().retry.max_attempts == 9

        configure_settings(None)
        assert get_settings() is not custom


class TestExceptions:
    """Tests for the exception hierarchy."""

    def test_all_derive_from_base(self):
        """Test every library error is a FaultlineError."""
        errors = [
            CircuitBreakerOpenError("db", 3),
            RetryError(2),
            AbortError(),
            BulkheadFullError("db", 2, 1),
            TimeoutError(1.5),
        ]
        assert all(isinstance(e, FaultlineError) for e in errors)

    def test_str_includes_details(self):
        """Test details are appended to the message."""
        error = CircuitBreakerOpenError("db", 3, retry_after=1.23456)

        assert "Circuit breaker 'db' is open" in str(error)
        assert error.details["retry_after_seconds"] == 1.235
        assert error.retry_after == 1.23456

    def test_str_without_details(self):
        """Test a bare message renders unchanged."""
        assert str(AbortError()) == "Operation aborted"

    def test_retry_error_records_last_error(self):
        """Test RetryError keeps the final cause."""
        cause = ValueError("boom")
        error = RetryError(3, cause)

        assert error.attempts == 3
        assert error.last_error is cause
        assert error.details["last_error"] == "boom"

    def test_timeout_error_message(self):
        """Test the deadline appears in the message."""
        error = TimeoutError(0.5, operation="fetch")
        assert error.message == "Operation timed out after 0.5s"
        assert error.details["operation"] == "fetch"

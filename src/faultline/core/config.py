"""Configuration management using Pydantic settings."""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from faultline.core.types import BackoffStrategy


class LogLevel(str, Enum):
    """Log level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CircuitBreakerSettings(BaseSettings):
    """Default circuit breaker options."""

    model_config = SettingsConfigDict(env_prefix="CIRCUIT_BREAKER_")

    failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures before the circuit opens",
    )
    recovery_timeout: float = Field(
        default=30.0,
        ge=0,
        description="Seconds the circuit stays open before a trial call",
    )
    success_threshold: int = Field(default=1, ge=1)
    half_open_max_calls: int = Field(default=1, ge=1)


class RetrySettings(BaseSettings):
    """Default retry options."""

    model_config = SettingsConfigDict(env_prefix="RETRY_")

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=30.0, ge=0)
    backoff: BackoffStrategy = Field(default=BackoffStrategy.EXPONENTIAL)


class RateLimitSettings(BaseSettings):
    """Default token bucket options."""

    model_config = SettingsConfigDict(env_prefix="RATE_LIMIT_")

    max_requests: int = Field(
        default=10,
        ge=1,
        description="Bucket capacity, refilled in full every interval",
    )
    interval: float = Field(default=1.0, gt=0)
    queue_excess: bool = Field(default=False)
    queue_timeout: float | None = Field(
        default=None,
        description="Seconds a queued caller may wait before rejection",
    )


class BulkheadSettings(BaseSettings):
    """Default bulkhead options."""

    model_config = SettingsConfigDict(env_prefix="BULKHEAD_")

    max_concurrent: int = Field(default=10, ge=1)
    max_queue: int = Field(default=100, ge=0)


class TimeoutSettings(BaseSettings):
    """Timeout and health probe defaults."""

    model_config = SettingsConfigDict(env_prefix="TIMEOUT_")

    default_timeout: float = Field(default=10.0, gt=0)
    health_check_timeout: float = Field(default=5.0, gt=0)
    health_cache_ttl: float = Field(default=5.0, ge=0)


class ObservabilitySettings(BaseSettings):
    """Observability settings."""

    model_config = SettingsConfigDict(env_prefix="OBSERVABILITY_")

    log_level: LogLevel = Field(default=LogLevel.INFO)
    log_format: Literal["json", "console"] = Field(default="json")
    metrics_enabled: bool = Field(default=True)
    service_name: str = Field(default="faultline")


class Settings(BaseSettings):
    """Main library settings."""

    model_config = SettingsConfigDict(
        env_prefix="FAULTLINE_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    circuit_breaker: CircuitBreakerSettings = Field(default_factory=CircuitBreakerSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    bulkhead: BulkheadSettings = Field(default_factory=BulkheadSettings)
    timeout: TimeoutSettings = Field(default_factory=TimeoutSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @classmethod
    def load(cls) -> Settings:
        """Load settings from environment."""
        return cls()


# Global settings instance (lazy loaded)
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def configure_settings(settings: Settings | None) -> None:
    """Configure the global settings instance (for testing)."""
    global _settings
    _settings = settings

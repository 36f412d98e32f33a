"""Health probes built on the timeout primitive."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable

from faultline.core.config import get_settings
from faultline.core.types import HealthCheckResult, HealthStatus
from faultline.observability.logging import get_logger
from faultline.observability.metrics import get_metrics_collector
from faultline.resilience.timeout import with_timeout

logger = get_logger(__name__)

HealthProbe = Callable[[], Awaitable[HealthCheckResult]]


def create_health_check(
    check: Callable[[], Any],
    timeout: float | None = None,
    name: str = "default",
) -> HealthProbe:
    """
    Create a probe that runs *check* under a deadline.

    The probe never raises: errors and timeouts are reported as an
    unhealthy result.

    Args:
        check: Async function; returning normally means healthy.
        timeout: Deadline in seconds (defaults to configured value).
        name: Probe name for logs and metrics.

    Returns:
        Async function returning HealthCheckResult.
    """
    deadline = timeout if timeout is not None else get_settings().timeout.health_check_timeout
    metrics = get_metrics_collector()

    async def probe() -> HealthCheckResult:
        start_time = time.perf_counter()
        error: str | None = None

        try:
            await with_timeout(check, deadline)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = str(e) or type(e).__name__

        latency = time.perf_counter() - start_time
        healthy = error is None
        metrics.record_health_check(name, healthy, latency)
        if not healthy:
            logger.warning("Health check failed", name=name, error=error)

        return HealthCheckResult(
            healthy=healthy,
            latency=latency,
            timestamp=time.time(),
            error=error,
        )

    return probe


class HealthChecker:
    """
    Coordinates health probes across multiple components.

    Features:
    - Concurrent probing
    - Aggregated health status
    - Caching to prevent check storms
    """

    def __init__(self, cache_ttl: float | None = None) -> None:
        """
        Initialize health checker.

        Args:
            cache_ttl: Seconds a result stays cached (defaults to configured value).
        """
        self._cache_ttl = (
            cache_ttl if cache_ttl is not None else get_settings().timeout.health_cache_ttl
        )
        self._probes: dict[str, HealthProbe] = {}
        self._cache: dict[str, tuple[HealthCheckResult, float]] = {}

    def register(self, component: str, probe: HealthProbe) -> None:
        """
        Register a probe, usually one made by create_health_check.

        Args:
            component: Component name.
            probe: Async function returning HealthCheckResult.
        """
        self._probes[component] = probe
        self._cache.pop(component, None)
        logger.debug("Registered health check", component=component)

    def unregister(self, component: str) -> None:
        """Unregister a health check."""
        self._probes.pop(component, None)
        self._cache.pop(component, None)

    async def check(self, component: str) -> HealthCheckResult:
        """
        Run a single probe.

        Args:
            component: Component to check.

        Returns:
            HealthCheckResult.
        """
        cached = self._get_cached(component)
        if cached:
            return cached

        if component not in self._probes:
            return HealthCheckResult(
                healthy=False,
                latency=0.0,
                timestamp=time.time(),
                error=f"Unknown component: {component}",
            )

        result = await self._probes[component]()
        self._cache[component] = (result, time.monotonic())
        return result

    async def check_all(self) -> dict[str, HealthCheckResult]:
        """Run all registered probes concurrently."""
        components = list(self._probes)
        results = await asyncio.gather(*(self.check(c) for c in components))
        return dict(zip(components, results))

    async def get_aggregate_status(self) -> tuple[HealthStatus, dict[str, Any]]:
        """
        Get aggregate health status across all components.

        Returns:
            Tuple of (overall status, details dict).
        """
        results = await self.check_all()
        healthy_count = sum(1 for r in results.values() if r.healthy)

        if healthy_count == len(results):
            overall = HealthStatus.HEALTHY
        elif healthy_count == 0:
            overall = HealthStatus.UNHEALTHY
        else:
            overall = HealthStatus.DEGRADED

        details = {
            "status": overall.value,
            "components": {
                name: result.to_dict()
                for name, result in results.items()
            },
            "healthy_count": healthy_count,
            "total_count": len(results),
        }

        return overall, details

    def _get_cached(self, component: str) -> HealthCheckResult | None:
        """Get cached result if still valid."""
        if component in self._cache:
            result, cached_at = self._cache[component]
            if time.monotonic() - cached_at < self._cache_ttl:
                return result
        return None

    def clear_cache(self) -> None:
        """Clear the result cache."""
        self._cache.clear()

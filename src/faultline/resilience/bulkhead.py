"""Bulkhead: bounded concurrency with a bounded FIFO wait queue.

Keeps one slow dependency from tying up every in-flight call. Each
bulkhead owns its own slots, so a spike against one resource cannot
starve callers of another.
"""

from __future__ import annotations

import asyncio
import functools
from collections import deque
from typing import Any, Callable

from faultline.core.config import Settings, get_settings
from faultline.core.exceptions import BulkheadFullError, ConfigurationError
from faultline.observability.logging import get_logger
from faultline.observability.metrics import get_metrics_collector
from faultline.resilience._utils import invoke

logger = get_logger(__name__)


class Bulkhead:
    """Async bulkhead.

    Args:
        name: identifies the protected resource (for metrics/logs)
        max_concurrent: maximum simultaneous in-flight calls
        max_queue: maximum calls waiting for a slot before rejecting
    """

    def __init__(
        self,
        name: str = "default",
        max_concurrent: int = 10,
        max_queue: int = 100,
    ) -> None:
        if max_concurrent < 1 or max_queue < 0:
            raise ConfigurationError(
                "max_concurrent must be at least 1 and max_queue not negative",
                {"max_concurrent": max_concurrent, "max_queue": max_queue},
            )

        self.name = name
        self.max_concurrent = max_concurrent
        self.max_queue = max_queue

        self._running = 0
        self._queue: deque[asyncio.Future[None]] = deque()
        self._metrics = get_metrics_collector()

    @classmethod
    def from_settings(
        cls,
        name: str = "default",
        settings: Settings | None = None,
        **overrides: Any,
    ) -> Bulkhead:
        """Build a bulkhead from configured defaults, with explicit overrides."""
        config = (settings or get_settings()).bulkhead
        options: dict[str, Any] = {
            "max_concurrent": config.max_concurrent,
            "max_queue": config.max_queue,
        }
        options.update(overrides)
        return cls(name=name, **options)

    async def execute(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Execute *func* within the bulkhead, rejecting if at capacity."""
        await self._acquire()
        try:
            return await invoke(func, *args, **kwargs)
        finally:
            self._release()

    async def _acquire(self) -> None:
        if self._running < self.max_concurrent and not self._queue:
            self._running += 1
            self._report()
            return

        if len(self._queue) >= self.max_queue:
            self._metrics.record_bulkhead_rejection(self.name)
            logger.warning(
                "Bulkhead rejected call",
                name=self.name,
                running=self._running,
                queued=len(self._queue),
            )
            raise BulkheadFullError(self.name, self.max_concurrent, self.max_queue)

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._queue.append(waiter)
        self._report()

        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # The slot was already handed over, pass it on
                self._release()
            else:
                try:
                    self._queue.remove(waiter)
                except ValueError:
                    pass
                self._report()
            raise

    def _release(self) -> None:
        """Hand the slot to the longest waiter, or free it."""
        while self._queue:
            waiter = self._queue.popleft()
            if not waiter.done():
                waiter.set_result(None)
                self._report()
                return

        self._running -= 1
        self._report()

    def _report(self) -> None:
        self._metrics.set_bulkhead_usage(self.name, self._running, len(self._queue))

    def is_available(self) -> bool:
        """True if a call would start immediately."""
        return self._running < self.max_concurrent

    def get_running(self) -> int:
        return self._running

    def get_queue_size(self) -> int:
        return len(self._queue)

    @property
    def available_slots(self) -> int:
        return self.max_concurrent - self._running

    def get_stats(self) -> dict[str, Any]:
        """Get bulkhead statistics."""
        return {
            "name": self.name,
            "running": self._running,
            "queued": len(self._queue),
            "max_concurrent": self.max_concurrent,
            "max_queue": self.max_queue,
        }


def with_bulkhead(
    func: Callable[..., Any],
    bulkhead: Bulkhead | None = None,
    **options: Any,
) -> Callable[..., Any]:
    """
    Wrap *func* so every call runs inside a bulkhead.

    The bulkhead is available as ``wrapper.bulkhead``.
    """
    if bulkhead is None:
        options.setdefault("name", getattr(func, "__name__", "default"))
        bulkhead = Bulkhead(**options)

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        return await bulkhead.execute(func, *args, **kwargs)

    wrapper.bulkhead = bulkhead  # type: ignore[attr-defined]
    return wrapper

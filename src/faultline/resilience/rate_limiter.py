"""Token bucket rate limiting."""

from __future__ import annotations

import asyncio
import functools
import time
from collections import deque
from typing import Any, Callable

from faultline.core.config import Settings, get_settings
from faultline.core.exceptions import ConfigurationError, RateLimitExceededError
from faultline.observability.logging import get_logger
from faultline.observability.metrics import get_metrics_collector
from faultline.resilience._utils import invoke

logger = get_logger(__name__)

# Floor for drain-loop sleeps, absorbs float rounding in the refill math
_MIN_WAIT = 0.001


class _Waiter:
    """A queued acquire() call."""

    __slots__ = ("future", "enqueued_at")

    def __init__(self, future: asyncio.Future[None], enqueued_at: float) -> None:
        self.future = future
        self.enqueued_at = enqueued_at


class RateLimiter:
    """
    Token bucket rate limiter.

    Allows bursts up to ``max_requests`` while enforcing an average of
    ``max_requests`` per ``interval`` seconds. Tokens refill continuously.
    With ``queue_excess`` enabled, callers over quota wait in FIFO order
    instead of being rejected.
    """

    def __init__(
        self,
        name: str = "default",
        max_requests: int = 10,
        interval: float = 1.0,
        queue_excess: bool = False,
        queue_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize rate limiter.

        Args:
            name: Limiter name.
            max_requests: Bucket capacity and tokens added per interval.
            interval: Refill interval in seconds.
            queue_excess: Queue callers over quota instead of rejecting.
            queue_timeout: Max seconds a queued caller waits (None = forever).
            clock: Monotonic time source.
        """
        if max_requests < 1 or interval <= 0:
            raise ConfigurationError(
                "max_requests must be at least 1 and interval positive",
                {"max_requests": max_requests, "interval": interval},
            )

        self._name = name
        self._capacity = float(max_requests)
        self._interval = interval
        self._rate = max_requests / interval
        self._queue_excess = queue_excess
        self._queue_timeout = queue_timeout
        self._clock = clock

        self._tokens = self._capacity
        self._last_refill = clock()
        self._queue: deque[_Waiter] = deque()
        self._drain_task: asyncio.Task[None] | None = None

        self._metrics = get_metrics_collector()

    @classmethod
    def from_settings(
        cls,
        name: str = "default",
        settings: Settings | None = None,
        **overrides: Any,
    ) -> RateLimiter:
        """Build a limiter from configured defaults, with explicit overrides."""
        config = (settings or get_settings()).rate_limit
        options: dict[str, Any] = {
            "max_requests": config.max_requests,
            "interval": config.interval,
            "queue_excess": config.queue_excess,
            "queue_timeout": config.queue_timeout,
        }
        options.update(overrides)
        return cls(name=name, **options)

    @property
    def name(self) -> str:
        return self._name

    def _refill(self) -> None:
        """Refill tokens based on elapsed time."""
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._last_refill = now

    def _time_until_token(self) -> float:
        if self._tokens >= 1:
            return 0.0
        return (1 - self._tokens) / self._rate

    def try_acquire(self) -> bool:
        """
        Take a token without waiting.

        Never jumps ahead of queued callers.

        Returns:
            True if a token was taken.
        """
        admitted = self._take()
        self._metrics.record_rate_limit(self._name, admitted=admitted)
        return admitted

    def _take(self) -> bool:
        self._refill()

        if self._queue or self._tokens < 1:
            return False

        self._tokens -= 1
        return True

    async def acquire(self) -> None:
        """
        Acquire a token, queueing if configured to.

        Raises:
            RateLimitExceededError: Over quota without queueing, queued wait
                expired, or the limiter was reset while waiting.
        """
        if self._take():
            self._metrics.record_rate_limit(self._name, admitted=True)
            return

        if not self._queue_excess:
            self._metrics.record_rate_limit(self._name, admitted=False)
            retry_after = self._time_until_token()
            logger.warning(
                "Rate limit exceeded",
                name=self._name,
                retry_after=round(retry_after, 3),
            )
            raise RateLimitExceededError(self._name, retry_after)

        loop = asyncio.get_running_loop()
        waiter = _Waiter(loop.create_future(), self._clock())
        self._queue.append(waiter)
        self._metrics.set_rate_limit_queue(self._name, len(self._queue))
        self._ensure_drain()

        try:
            await waiter.future
        except asyncio.CancelledError:
            if waiter.future.done() and not waiter.future.cancelled():
                # Granted just before the caller went away, give it back
                self._tokens = min(self._capacity, self._tokens + 1)
            else:
                self._discard(waiter)
            raise

    async def execute(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Acquire a token, then run *func*."""
        await self.acquire()
        return await invoke(func, *args, **kwargs)

    def _discard(self, waiter: _Waiter) -> None:
        try:
            self._queue.remove(waiter)
        except ValueError:
            pass
        self._metrics.set_rate_limit_queue(self._name, len(self._queue))

    def _ensure_drain(self) -> None:
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        """Admit queued callers in order as tokens become available."""
        try:
            while self._queue:
                self._expire_waiters()
                if not self._queue:
                    break

                head = self._queue[0]
                if head.future.done():
                    self._queue.popleft()
                    continue

                self._refill()
                if self._tokens >= 1:
                    self._queue.popleft()
                    self._tokens -= 1
                    head.future.set_result(None)
                    self._metrics.record_rate_limit(self._name, admitted=True)
                    self._metrics.set_rate_limit_queue(self._name, len(self._queue))
                    continue

                wait = self._time_until_token()
                if self._queue_timeout is not None:
                    wait = min(wait, head.enqueued_at + self._queue_timeout - self._clock())
                await asyncio.sleep(max(wait, _MIN_WAIT))
        finally:
            if self._drain_task is asyncio.current_task():
                self._drain_task = None

    def _expire_waiters(self) -> None:
        if self._queue_timeout is None:
            return

        now = self._clock()
        while self._queue and now - self._queue[0].enqueued_at >= self._queue_timeout:
            waiter = self._queue.popleft()
            if waiter.future.done():
                continue
            self._metrics.record_rate_limit(self._name, admitted=False)
            logger.warning(
                "Rate limit queue wait expired",
                name=self._name,
                queue_timeout=self._queue_timeout,
            )
            waiter.future.set_exception(
                RateLimitExceededError(
                    self._name,
                    self._time_until_token(),
                    reason="queue timeout",
                )
            )
        self._metrics.set_rate_limit_queue(self._name, len(self._queue))

    def get_available_tokens(self) -> float:
        """Current token count after refill, without consuming one."""
        self._refill()
        return self._tokens

    def get_queue_size(self) -> int:
        """Number of callers waiting for a token."""
        return sum(1 for waiter in self._queue if not waiter.future.done())

    def reset(self) -> None:
        """Refill the bucket and reject everyone still queued."""
        self._tokens = self._capacity
        self._last_refill = self._clock()

        while self._queue:
            waiter = self._queue.popleft()
            if not waiter.future.done():
                waiter.future.set_exception(
                    RateLimitExceededError(self._name, reason="limiter reset")
                )

        if self._drain_task is not None:
            self._drain_task.cancel()
            self._drain_task = None

        self._metrics.set_rate_limit_queue(self._name, 0)
        logger.info("Rate limiter reset", name=self._name)

    def get_stats(self) -> dict[str, Any]:
        """Get rate limiter statistics."""
        return {
            "name": self._name,
            "available": round(self.get_available_tokens(), 3),
            "max_requests": int(self._capacity),
            "interval_seconds": self._interval,
            "queue_excess": self._queue_excess,
            "queue_size": self.get_queue_size(),
        }


def with_rate_limit(
    func: Callable[..., Any],
    limiter: RateLimiter | None = None,
    **options: Any,
) -> Callable[..., Any]:
    """
    Wrap *func* so every call first takes a rate limiter token.

    The limiter is available as ``wrapper.limiter``.
    """
    if limiter is None:
        options.setdefault("name", getattr(func, "__name__", "default"))
        limiter = RateLimiter(**options)

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        return await limiter.execute(func, *args, **kwargs)

    wrapper.limiter = limiter  # type: ignore[attr-defined]
    return wrapper

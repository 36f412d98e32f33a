"""Deadline enforcement for async operations.

The wrapped operation is raced against a timer. When the timer wins the
caller gets a TimeoutError, but the operation itself keeps running: it is
left to finish in the background and its outcome is discarded. Callers that
need the work stopped must cancel it themselves.
"""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Callable

from faultline.core.config import get_settings
from faultline.core.exceptions import ConfigurationError, TimeoutError
from faultline.observability.logging import get_logger
from faultline.observability.metrics import get_metrics_collector
from faultline.resilience._utils import abandon, invoke, operation_name

logger = get_logger(__name__)


async def with_timeout(
    func: Callable[..., Any],
    seconds: float | None,
    *args: Any,
    **kwargs: Any,
) -> Any:
    """
    Run *func* with a deadline.

    Args:
        func: Async function to execute.
        seconds: Deadline in seconds, or None for the configured default.
        *args: Function arguments.
        **kwargs: Function keyword arguments.

    Returns:
        Function result.

    Raises:
        TimeoutError: The deadline elapsed first.
    """
    if seconds is None:
        seconds = get_settings().timeout.default_timeout
    if seconds <= 0:
        raise ConfigurationError("Timeout must be positive", {"seconds": seconds})

    task = asyncio.ensure_future(invoke(func, *args, **kwargs))
    try:
        done, _ = await asyncio.wait({task}, timeout=seconds)
    except asyncio.CancelledError:
        # The caller is gone; the operation follows the same fire-and-forget rule
        abandon(task)
        raise

    if task in done:
        return task.result()

    abandon(task)
    name = operation_name(func)
    get_metrics_collector().record_timeout(name)
    logger.warning("Operation timed out", operation=name, timeout=seconds)
    raise TimeoutError(seconds, name)


def timeout(func: Callable[..., Any], seconds: float | None = None) -> Callable[..., Any]:
    """Wrap *func* so every call is bounded by *seconds* (or the configured default)."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        return await with_timeout(func, seconds, *args, **kwargs)

    return wrapper

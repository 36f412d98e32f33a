"""Helpers shared by the resilience primitives."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable

from faultline.core.exceptions import AbortError
from faultline.observability.logging import get_logger

logger = get_logger(__name__)

# Strong references to tasks whose result nobody awaits any more
_abandoned: set[asyncio.Future[Any]] = set()


async def invoke(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call *func* and await the result if it is awaitable."""
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


def operation_name(func: Callable[..., Any]) -> str:
    """Best-effort label for log lines and metrics."""
    return getattr(func, "__qualname__", None) or getattr(func, "__name__", None) or repr(func)


def abandon(future: asyncio.Future[Any]) -> None:
    """
    Let a still-running task finish in the background.

    Keeps a reference so the task is not garbage collected, and retrieves
    its outcome so late failures are logged instead of reported as
    "exception was never retrieved".
    """
    if future.done():
        _consume(future)
        return
    _abandoned.add(future)
    future.add_done_callback(_consume)


def _consume(future: asyncio.Future[Any]) -> None:
    _abandoned.discard(future)
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.debug("Abandoned operation failed", error=str(error))


def check_signal(signal: asyncio.Event | None) -> None:
    """Raise AbortError if *signal* is set."""
    if signal is not None and signal.is_set():
        raise AbortError()


async def sleep_or_abort(delay: float, signal: asyncio.Event | None) -> None:
    """Sleep for *delay* seconds, raising AbortError as soon as *signal* is set."""
    check_signal(signal)
    if signal is None:
        await asyncio.sleep(delay)
        return

    try:
        await asyncio.wait_for(signal.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise AbortError()

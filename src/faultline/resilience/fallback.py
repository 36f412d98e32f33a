"""Graceful degradation: fallback values and hedged requests."""

from __future__ import annotations

import asyncio
import functools
import inspect
from typing import Any, Callable

from faultline.core.exceptions import ConfigurationError
from faultline.observability.logging import get_logger
from faultline.observability.metrics import get_metrics_collector
from faultline.resilience._utils import abandon, check_signal, invoke, operation_name

logger = get_logger(__name__)


async def with_fallback(
    func: Callable[..., Any],
    fallback_value: Any,
    *args: Any,
    **kwargs: Any,
) -> Any:
    """
    Run *func*, substituting a fallback if it raises.

    Args:
        func: Async function to execute.
        fallback_value: Static value, or a callable receiving the error.
            The callable may be sync or async.
        *args: Function arguments.
        **kwargs: Function keyword arguments.

    Returns:
        The function result, or the fallback.
    """
    try:
        return await invoke(func, *args, **kwargs)
    except Exception as e:
        name = operation_name(func)
        get_metrics_collector().record_fallback(name)
        logger.info("Using fallback after error", operation=name, error=str(e))

        if callable(fallback_value):
            result = fallback_value(e)
            if inspect.isawaitable(result):
                result = await result
            return result
        return fallback_value


def fallback(func: Callable[..., Any], fallback_value: Any) -> Callable[..., Any]:
    """Wrap *func* so failures return *fallback_value* instead."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        return await with_fallback(func, fallback_value, *args, **kwargs)

    return wrapper


async def hedge(
    func: Callable[[], Any],
    count: int = 2,
    stagger: float = 0.1,
    signal: asyncio.Event | None = None,
) -> Any:
    """
    Race staggered redundant attempts and return the first success.

    A new attempt starts every *stagger* seconds while earlier ones are
    still pending, up to *count* in total. When nothing is in flight after
    a failure, the next attempt starts immediately. Attempts still running
    after a winner is found are left to finish in the background.

    Args:
        func: Zero-argument async function.
        count: Maximum attempts.
        stagger: Seconds between attempt launches.
        signal: Event that aborts the race when set, even mid-flight.

    Returns:
        Result of the first successful attempt.

    Raises:
        AbortError: The signal was set.
        Exception: The last error, if every attempt failed.
    """
    if count < 1:
        raise ConfigurationError("count must be at least 1", {"count": count})

    loop = asyncio.get_running_loop()
    pending: set[asyncio.Future[Any]] = set()
    last_error: BaseException | None = None
    launched = 0
    next_launch = loop.time()
    aborted = asyncio.ensure_future(signal.wait()) if signal is not None else None

    try:
        while True:
            check_signal(signal)

            if launched < count and (not pending or loop.time() >= next_launch):
                pending.add(asyncio.ensure_future(invoke(func)))
                launched += 1
                next_launch = loop.time() + stagger
                if launched > 1:
                    logger.debug("Launched hedged attempt", attempt=launched)

            wait_for = max(0.0, next_launch - loop.time()) if launched < count else None
            watched = pending | {aborted} if aborted is not None else pending
            done, _ = await asyncio.wait(
                watched,
                timeout=wait_for,
                return_when=asyncio.FIRST_COMPLETED,
            )
            check_signal(signal)
            pending -= done

            for task in done:
                if task is aborted or task.cancelled():
                    continue
                error = task.exception()
                if error is None:
                    return task.result()
                last_error = error

            if not pending and launched >= count:
                if last_error is None:
                    raise asyncio.CancelledError()
                raise last_error
    finally:
        if aborted is not None:
            aborted.cancel()
        for task in pending:
            abandon(task)

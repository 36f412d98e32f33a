"""Compose several resilience layers around one operation."""

from __future__ import annotations

import functools
from typing import Any, Callable

from faultline.observability.logging import LogContext
from faultline.resilience._utils import invoke
from faultline.resilience.bulkhead import Bulkhead
from faultline.resilience.circuit_breaker import CircuitBreaker
from faultline.resilience.fallback import with_fallback
from faultline.resilience.rate_limiter import RateLimiter
from faultline.resilience.retry import RetryPolicy, retry as retry_call
from faultline.resilience.timeout import with_timeout

# Sentinel so that None stays a valid fallback value
_MISSING: Any = object()


def _build(kind: type, value: Any, name: str) -> Any:
    if value is None or isinstance(value, kind):
        return value
    if isinstance(value, dict):
        options = {"name": name, **value}
        return kind(**options)
    raise TypeError(f"Expected {kind.__name__} or dict of options, got {type(value).__name__}")


def _layer(func: Callable[..., Any], wrap: Callable[..., Any], *options: Any, **kw: Any) -> Callable[..., Any]:
    """
    Run *func* through *wrap*.

    Call arguments are bound to *func* first, so they can never collide
    with the layer's own options (``policy``, ``seconds`` and so on).
    """

    @functools.wraps(func)
    async def layer(*args: Any, **kwargs: Any) -> Any:
        bound = functools.update_wrapper(functools.partial(func, *args, **kwargs), func)
        return await wrap(bound, *options, **kw)

    return layer


def resilient(
    func: Callable[..., Any],
    *,
    timeout: float | None = None,
    retry: RetryPolicy | dict[str, Any] | None = None,
    circuit_breaker: CircuitBreaker | dict[str, Any] | None = None,
    rate_limit: RateLimiter | dict[str, Any] | None = None,
    bulkhead: Bulkhead | dict[str, Any] | None = None,
    fallback: Any = _MISSING,
) -> Callable[..., Any]:
    """
    Wrap *func* in the enabled resilience layers.

    Layers, outermost first:

        fallback -> circuit breaker -> rate limit -> bulkhead -> retry -> timeout

    So every attempt gets its own timeout, retries happen while holding a
    single bulkhead slot and rate limit token, and the circuit breaker
    counts one failure per exhausted retry sequence rather than one per
    attempt.

    Log lines emitted during a call carry ``pipeline`` set to the
    function name.

    Args:
        func: Async function to protect.
        timeout: Per-attempt deadline in seconds.
        retry: RetryPolicy or its options.
        circuit_breaker: CircuitBreaker or its options.
        rate_limit: RateLimiter or its options.
        bulkhead: Bulkhead or its options.
        fallback: Value or callable used when everything else failed.

    Returns:
        Wrapped async function exposing the layer instances as
        ``circuit_breaker``, ``rate_limiter``, ``bulkhead`` and ``policy``.
    """
    name = getattr(func, "__name__", "resilient")
    policy = RetryPolicy(**retry) if isinstance(retry, dict) else retry
    breaker = _build(CircuitBreaker, circuit_breaker, name)
    limiter = _build(RateLimiter, rate_limit, name)
    partition = _build(Bulkhead, bulkhead, name)

    call: Callable[..., Any] = func

    if timeout is not None:
        call = _layer(call, with_timeout, timeout)
    if policy is not None:
        call = _layer(call, retry_call, policy=policy)
    if partition is not None:
        call = _layer(call, partition.execute)
    if limiter is not None:
        call = _layer(call, limiter.execute)
    if breaker is not None:
        call = _layer(call, breaker.execute)
    if fallback is not _MISSING:
        call = _layer(call, with_fallback, fallback)

    layered = call

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        with LogContext(pipeline=name):
            return await invoke(layered, *args, **kwargs)

    wrapper.circuit_breaker = breaker  # type: ignore[attr-defined]
    wrapper.rate_limiter = limiter  # type: ignore[attr-defined]
    wrapper.bulkhead = partition  # type: ignore[attr-defined]
    wrapper.policy = policy  # type: ignore[attr-defined]
    return wrapper

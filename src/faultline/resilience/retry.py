"""Retry logic with constant or exponential backoff."""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Callable

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential, wait_fixed
from tenacity import RetryError as TenacityRetryError
from tenacity.wait import wait_base

from faultline.core.config import Settings, get_settings
from faultline.core.exceptions import AbortError, ConfigurationError, RetryError
from faultline.core.types import BackoffStrategy
from faultline.observability.logging import get_logger
from faultline.observability.metrics import get_metrics_collector
from faultline.resilience._utils import check_signal, invoke, operation_name, sleep_or_abort

logger = get_logger(__name__)

RetryableCheck = Callable[[BaseException, int], bool]
RetryCallback = Callable[[BaseException, int, float], Any]


class RetryPolicy:
    """
    Configurable retry policy.

    Features:
    - Constant or exponential backoff, capped at max_delay
    - Pluggable retryable-error predicate
    - Callback before every backoff sleep
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        backoff: BackoffStrategy | str = BackoffStrategy.EXPONENTIAL,
        is_retryable: RetryableCheck | None = None,
        on_retry: RetryCallback | None = None,
    ) -> None:
        """
        Initialize retry policy.

        Args:
            max_attempts: Total attempts, including the first one.
            base_delay: Base delay in seconds.
            max_delay: Maximum delay in seconds.
            backoff: "constant" or "exponential".
            is_retryable: Called with (error, attempt); False stops retrying.
            on_retry: Called with (error, attempt, delay) before each sleep.
        """
        if max_attempts < 1:
            raise ConfigurationError(
                "max_attempts must be at least 1",
                {"max_attempts": max_attempts},
            )
        if base_delay < 0 or max_delay < 0:
            raise ConfigurationError(
                "Retry delays must not be negative",
                {"base_delay": base_delay, "max_delay": max_delay},
            )

        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff = BackoffStrategy(backoff)
        self.is_retryable = is_retryable
        self.on_retry = on_retry

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **overrides: Any) -> RetryPolicy:
        """Build a policy from configured defaults, with explicit overrides."""
        config = (settings or get_settings()).retry
        options: dict[str, Any] = {
            "max_attempts": config.max_attempts,
            "base_delay": config.base_delay,
            "max_delay": config.max_delay,
            "backoff": config.backoff,
        }
        options.update(overrides)
        return cls(**options)

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay after a given failed attempt.

        Args:
            attempt: Failed attempt (1-based).

        Returns:
            Delay in seconds.
        """
        if self.backoff == BackoffStrategy.CONSTANT:
            delay = self.base_delay
        else:
            delay = self.base_delay * (2 ** (attempt - 1))
        return min(delay, self.max_delay)

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """
        Determine if an error is eligible for another attempt.

        The attempt budget is enforced separately by the retry loop.

        Args:
            error: The exception that occurred.
            attempt: Attempt that just failed (1-based).

        Returns:
            True if should retry.
        """
        if not isinstance(error, Exception) or isinstance(error, AbortError):
            return False

        if self.is_retryable is not None:
            return bool(self.is_retryable(error, attempt))

        return True

    def wait_strategy(self) -> wait_base:
        """Equivalent tenacity wait strategy."""
        if self.backoff == BackoffStrategy.CONSTANT:
            return wait_fixed(min(self.base_delay, self.max_delay))
        return wait_exponential(multiplier=self.base_delay, exp_base=2, max=self.max_delay)


def _coerce_policy(policy: RetryPolicy | dict[str, Any] | None) -> RetryPolicy:
    if policy is None:
        return RetryPolicy.from_settings()
    if isinstance(policy, dict):
        return RetryPolicy(**policy)
    return policy


async def retry(
    func: Callable[..., Any],
    *args: Any,
    policy: RetryPolicy | dict[str, Any] | None = None,
    signal: asyncio.Event | None = None,
    **kwargs: Any,
) -> Any:
    """
    Execute a function with a retry policy.

    Args:
        func: Async function to execute.
        *args: Function arguments.
        policy: Retry policy (or its options as a dict).
        signal: Event that aborts the retry loop when set.
        **kwargs: Function keyword arguments.

    Returns:
        Function result.

    Raises:
        RetryError: Attempts exhausted or error not retryable.
        AbortError: The signal was set.
    """
    policy = _coerce_policy(policy)
    name = operation_name(func)
    metrics = get_metrics_collector()
    callback_errors: list[BaseException] = []

    def should_retry(retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return False
        return policy.should_retry(outcome.exception(), retry_state.attempt_number)

    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()  # type: ignore[union-attr]
        delay = retry_state.next_action.sleep  # type: ignore[union-attr]
        attempt = retry_state.attempt_number

        metrics.record_retry(name)
        logger.warning(
            "Retrying after error",
            operation=name,
            attempt=attempt,
            max_attempts=policy.max_attempts,
            error=str(error),
            delay=round(delay, 3),
        )
        if policy.on_retry is not None:
            try:
                policy.on_retry(error, attempt, delay)
            except Exception as e:
                callback_errors.append(e)
                raise

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy.wait_strategy(),
        retry=should_retry,
        before_sleep=before_sleep,
        sleep=functools.partial(sleep_or_abort, signal=signal),
        reraise=False,
    )

    attempts = 0
    try:
        async for attempt in retrying:
            check_signal(signal)
            attempts += 1
            with attempt:
                return await invoke(func, *args, **kwargs)

    except TenacityRetryError as e:
        last_error = e.last_attempt.exception()
        _log_exhausted(name, attempts, last_error)
        metrics.record_retry_exhausted(name)
        raise RetryError(attempts, last_error) from last_error

    except AbortError:
        logger.info("Retry aborted", operation=name, attempts=attempts)
        raise

    except Exception as e:
        if callback_errors and e is callback_errors[-1]:
            # on_retry itself failed; not an operation failure
            raise
        # Not retryable: stopped early with the original error
        _log_exhausted(name, attempts, e)
        metrics.record_retry_exhausted(name)
        raise RetryError(attempts, e) from e


def _log_exhausted(name: str, attempts: int, error: BaseException | None) -> None:
    logger.error(
        "Operation failed after retries",
        operation=name,
        attempts=attempts,
        error=str(error),
    )


def with_retry(
    func: Callable[..., Any],
    policy: RetryPolicy | dict[str, Any] | None = None,
    signal: asyncio.Event | None = None,
    **options: Any,
) -> Callable[..., Any]:
    """
    Wrap *func* so every call is retried according to a policy.

    Args:
        func: Async function to wrap.
        policy: Retry policy; built from options when omitted.
        signal: Event that aborts the retry loop when set.
        **options: RetryPolicy options when no policy is given.

    Returns:
        Wrapped function.
    """
    if policy is None:
        policy = RetryPolicy(**options) if options else RetryPolicy.from_settings()
    resolved = _coerce_policy(policy)

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        return await retry(func, *args, policy=resolved, signal=signal, **kwargs)

    wrapper.policy = resolved  # type: ignore[attr-defined]
    return wrapper

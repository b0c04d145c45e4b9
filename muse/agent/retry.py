"""
Retry with Backoff

One reusable wrapper for every network call to a language model,
embedding provider or paper search API:
- exponential backoff (initial delay doubled per retry)
- provider-suggested Retry-After honoured when present
- optional per-attempt timeout (a timeout counts as a failure)
- the last error is re-raised once retries are exhausted
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETRY_DELAY_RE = re.compile(r"retryDelay['\"]?\s*[:=]\s*['\"]?(\d+(?:\.\d+)?)s?")


class NonRetryableError(Exception):
    """Raised for failures that retrying cannot fix (e.g. exhausted quota)."""


def is_retryable(exc: BaseException) -> bool:
    """Default predicate: retry ordinary errors, never non-retryable ones."""
    return isinstance(exc, Exception) and not isinstance(exc, NonRetryableError)


def retry_after_seconds(exc: BaseException) -> Optional[float]:
    """Extract a provider-suggested delay from an error, if it carries one.

    Looks at, in order:
    - a ``retry_after`` attribute
    - a ``Retry-After`` header on ``exc.response`` or ``exc.headers``
    - a Gemini-style ``retryDelay: "30s"`` detail in the message
    """
    value: Any = getattr(exc, "retry_after", None)

    if value is None:
        headers = getattr(getattr(exc, "response", None), "headers", None)
        if headers is None:
            headers = getattr(exc, "headers", None)
        if headers:
            value = headers.get("retry-after") or headers.get("Retry-After")

    if value is None:
        match = _RETRY_DELAY_RE.search(str(exc))
        if match:
            value = match.group(1)

    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None


class wait_retry_after_or_exponential(wait_base):
    """Wait the suggested Retry-After, else ``initial * 2 ** (attempt - 1)``."""

    def __init__(self, initial: float, maximum: Optional[float] = None):
        self.initial = initial
        self.maximum = maximum

    def __call__(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        suggested = retry_after_seconds(exc) if exc is not None else None
        if suggested is not None:
            return suggested
        delay = self.initial * (2 ** (retry_state.attempt_number - 1))
        if self.maximum is not None:
            delay = min(delay, self.maximum)
        return delay


@dataclass
class BackoffPolicy:
    """How a call is retried.

    ``max_retries`` counts retries, so a call is attempted at most
    ``max_retries + 1`` times.
    """
    max_retries: int = 3
    initial_delay: float = 2.0
    max_delay: Optional[float] = None
    timeout: Optional[float] = None
    retry_if: Callable[[BaseException], bool] = is_retryable


async def call_with_backoff(
    fn: Callable[[], Awaitable[T]],
    policy: Optional[BackoffPolicy] = None,
    *,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    description: str = "call",
) -> T:
    """
    Run ``fn`` until it succeeds or the policy gives up.

    Args:
        fn: Zero-argument coroutine factory; called once per attempt
        policy: Retry policy (defaults to 3 retries from 2s)
        sleep: Override for ``asyncio.sleep`` (tests)
        description: Label used in retry log lines

    Returns:
        Whatever ``fn`` returns on the first successful attempt

    Raises:
        The last error raised by ``fn`` once retries are exhausted, or
        the first error the policy declines to retry.
    """
    policy = policy or BackoffPolicy()

    async def _attempt() -> T:
        if policy.timeout is None:
            return await fn()
        return await asyncio.wait_for(fn(), timeout=policy.timeout)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_retries + 1),
        wait=wait_retry_after_or_exponential(policy.initial_delay, policy.max_delay),
        retry=retry_if_exception(policy.retry_if),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
        sleep=sleep or asyncio.sleep,
    )

    async for attempt in retrying:
        with attempt:
            if attempt.retry_state.attempt_number > 1:
                logger.debug("%s: attempt %d", description, attempt.retry_state.attempt_number)
            return await _attempt()

    # AsyncRetrying either returns from the block above or re-raises
    raise RuntimeError(f"{description}: retry loop exited without a result")

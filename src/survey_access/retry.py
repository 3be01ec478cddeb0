"""
Retry and timeout policy for calls to the eligibility service.

Wraps one async operation with:
- bounded retries with exponential backoff (optionally jittered)
- a race-based timeout that stops waiting without aborting the request
- an ``on_retry`` observer hook and an optional retry predicate

The policy retries unconditionally unless the caller supplies ``should_retry``.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Optional, TypeVar

from survey_access.errors import AccessTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryObserver = Callable[[int, BaseException], None]
RetryPredicate = Callable[[BaseException], bool]
Sleeper = Callable[[float], Awaitable[object]]

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_MS = 1000.0
DEFAULT_MAX_DELAY_MS = 10000.0


def _consume_late_result(task: asyncio.Future) -> None:
    # The caller already gave up on this task; retrieve its outcome so the loop
    # does not report an unobserved exception.
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("[Retry] Late failure ignored after timeout: %s", type(exc).__name__)


async def with_timeout(
    operation: Awaitable[T],
    timeout_ms: Optional[float],
    *,
    message: str = "Operation timed out",
) -> T:
    """
    Race ``operation`` against a timer.

    Raises AccessTimeoutError if the timer wins. The underlying task keeps
    running; only the caller stops waiting for it.
    """
    if timeout_ms is None:
        return await operation

    task = asyncio.ensure_future(operation)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000.0)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task in done:
        return task.result()

    task.add_done_callback(_consume_late_result)
    raise AccessTimeoutError(f"{message} after {timeout_ms:g}ms")


@dataclass(frozen=True)
class RetryTimeoutPolicy:
    """Bounded retry with a non-decreasing, capped backoff schedule."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay_ms: float = DEFAULT_BASE_DELAY_MS
    max_delay_ms: float = DEFAULT_MAX_DELAY_MS
    timeout_ms: Optional[float] = None
    jitter_ratio: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("backoff delays must be non-negative")
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive when set")
        if not 0.0 <= self.jitter_ratio <= 1.0:
            raise ValueError("jitter_ratio must be within [0, 1]")

    def delay_for(self, attempt: int) -> float:
        """Backoff in ms after failed ``attempt`` (1-indexed), before jitter."""
        return min(self.base_delay_ms * 2 ** (attempt - 1), self.max_delay_ms)

    def backoff_schedule(self) -> list[float]:
        return [self.delay_for(attempt) for attempt in range(1, self.max_attempts)]

    def _jittered_delay(self, attempt: int, previous: float, rng: Callable[[], float]) -> float:
        delay = self.delay_for(attempt)
        if self.jitter_ratio:
            delay += delay * self.jitter_ratio * rng()
        return min(max(delay, previous), self.max_delay_ms)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        on_retry: Optional[RetryObserver] = None,
        should_retry: Optional[RetryPredicate] = None,
        sleep: Sleeper = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> T:
        """
        Invoke ``operation`` until it succeeds or attempts are exhausted.

        The last error is re-raised unchanged once no further attempt is allowed.
        """
        previous_delay = 0.0
        attempt = 0

        while True:
            attempt += 1
            try:
                return await with_timeout(operation(), self.timeout_ms)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                last_error = exc
                if attempt >= self.max_attempts:
                    raise
                if should_retry is not None and not should_retry(exc):
                    logger.debug("[Retry] Not retrying %s", type(exc).__name__)
                    raise

            delay = self._jittered_delay(attempt, previous_delay, rng)
            previous_delay = delay
            if on_retry is not None:
                on_retry(attempt, last_error)
            logger.debug(
                "[Retry] Attempt %s/%s failed, retrying in %.0fms: %s",
                attempt,
                self.max_attempts,
                delay,
                last_error,
            )
            await sleep(delay / 1000.0)

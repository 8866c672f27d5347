"""Bounded retry with exponential backoff and jitter.

:func:`with_retry` wraps one unit of work (normally one page fetch) and
never raises for the work's own failures: after the last attempt it
returns a :class:`RetryFailure` so that callers can carry on with the
remaining pages instead of aborting the whole job.

The delay before attempt ``n + 1`` is::

    base_delay * growth_factor ** (n - 1) + uniform(0, jitter)

The jitter keeps parallel workers that failed at the same moment from
retrying in lock-step.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

import structlog

from fanfic_downloader.core.exceptions import is_transient
from fanfic_downloader.scraper.config import (
    RETRY_ATTEMPTS,
    RETRY_BASE_DELAY,
    RETRY_GROWTH_FACTOR,
    RETRY_JITTER,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetrySuccess(Generic[T]):
    """The work succeeded on attempt number ``attempts``."""

    value: T
    attempts: int
    ok: bool = True


@dataclass(frozen=True)
class RetryFailure:
    """Every attempt failed.

    Attributes:
        error: Message of the final attempt's exception, verbatim.
        attempts: Number of attempts made (always ``max_attempts``).
        transient: Whether the final failure looked transient (timeout,
            missing content marker).
    """

    error: str
    attempts: int
    transient: bool
    ok: bool = False


RetryResult = Union[RetrySuccess[T], RetryFailure]


def backoff_delay(
    attempt: int,
    base_delay: float,
    growth_factor: float = RETRY_GROWTH_FACTOR,
    jitter: float = RETRY_JITTER,
) -> float:
    """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
    delay = base_delay * growth_factor ** (attempt - 1)
    if jitter > 0:
        delay += random.uniform(0, jitter)
    return delay


async def with_retry(
    attempt_fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = RETRY_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY,
    growth_factor: float = RETRY_GROWTH_FACTOR,
    jitter: float = RETRY_JITTER,
    label: str = "",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> RetryResult[T]:
    """Call ``attempt_fn`` up to ``max_attempts`` times.

    Every ``Exception`` is retried: timeouts and missing content markers are
    the expected failures, but the origin's failure modes are not fully
    enumerable.  ``asyncio.CancelledError`` is never caught, so a job
    timeout still tears the caller down immediately.

    Args:
        attempt_fn: Zero-argument coroutine function performing one attempt.
        max_attempts: Total number of attempts (``>= 1``).
        base_delay: Delay in seconds after the first failed attempt.
        growth_factor: Multiplier applied to the delay after each failure.
        jitter: Upper bound of the uniform random delay added to each wait.
        label: Short description used in log records (e.g. ``"page 7"``).
        sleep: Awaitable sleep function; injectable for tests.

    Returns:
        :class:`RetrySuccess` carrying the value, or :class:`RetryFailure`
        carrying the final error message.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(1, max_attempts + 1):
        try:
            value = await attempt_fn()
        except Exception as exc:  # noqa: BLE001
            transient = is_transient(exc)
            logger.warning(
                "page_attempt_failed",
                label=label,
                attempt=attempt,
                max_attempts=max_attempts,
                transient=transient,
                error=str(exc),
            )
            if attempt == max_attempts:
                return RetryFailure(error=str(exc), attempts=attempt, transient=transient)
            await sleep(backoff_delay(attempt, base_delay, growth_factor, jitter))
        else:
            return RetrySuccess(value=value, attempts=attempt)

    # Unreachable: the loop returns on success or on the final attempt.
    raise AssertionError("retry loop exited without a result")

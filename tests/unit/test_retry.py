"""Unit tests for the bounded retry policy."""

from __future__ import annotations

from typing import Any

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from fanfic_downloader.core.exceptions import ContentNotFoundError
from fanfic_downloader.scraper.retry import (
    RetryFailure,
    RetrySuccess,
    backoff_delay,
    with_retry,
)


def _flaky(failures: list[BaseException], value: str = "ok") -> Any:
    """Coroutine function raising each exception in *failures* once, then returning *value*."""
    pending = list(failures)
    calls: list[int] = []

    async def attempt() -> str:
        calls.append(1)
        if pending:
            raise pending.pop(0)
        return value

    attempt.calls = calls  # type: ignore[attr-defined]
    return attempt


class TestBackoffDelay:
    def test_grows_geometrically_without_jitter(self) -> None:
        delays = [backoff_delay(n, 8.0, 1.5, jitter=0) for n in (1, 2, 3)]
        assert delays == [8.0, 12.0, 18.0]

    def test_jitter_stays_within_bounds(self) -> None:
        for _ in range(50):
            delay = backoff_delay(1, 2.0, 1.5, jitter=1.0)
            assert 2.0 <= delay <= 3.0


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_first_attempt_success(self, fake_sleep: Any) -> None:
        attempt = _flaky([])

        result = await with_retry(attempt, max_attempts=3, sleep=fake_sleep)

        assert isinstance(result, RetrySuccess)
        assert result.ok is True
        assert result.value == "ok"
        assert result.attempts == 1
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, fake_sleep: Any) -> None:
        attempt = _flaky([PlaywrightTimeoutError("slow"), ContentNotFoundError("#storytext")])

        result = await with_retry(
            attempt, max_attempts=3, base_delay=8.0, growth_factor=1.5, jitter=0, sleep=fake_sleep
        )

        assert isinstance(result, RetrySuccess)
        assert result.attempts == 3
        assert fake_sleep.delays == [8.0, 12.0]

    @pytest.mark.asyncio
    async def test_exhaustion_returns_failure_with_last_error(self, fake_sleep: Any) -> None:
        attempt = _flaky([RuntimeError("one"), RuntimeError("two"), RuntimeError("three")])

        result = await with_retry(attempt, max_attempts=3, jitter=0, sleep=fake_sleep)

        assert isinstance(result, RetryFailure)
        assert result.ok is False
        assert result.attempts == 3
        assert result.error == "three"
        assert result.transient is False
        # No sleep after the final attempt.
        assert len(fake_sleep.delays) == 2
        assert len(attempt.calls) == 3

    @pytest.mark.asyncio
    async def test_timeout_failure_is_classified_transient(self, fake_sleep: Any) -> None:
        attempt = _flaky([PlaywrightTimeoutError("Timeout 15000ms exceeded")])

        result = await with_retry(attempt, max_attempts=1, sleep=fake_sleep)

        assert isinstance(result, RetryFailure)
        assert result.transient is True
        assert "15000ms" in result.error

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self, fake_sleep: Any) -> None:
        with pytest.raises(ValueError):
            await with_retry(_flaky([]), max_attempts=0, sleep=fake_sleep)

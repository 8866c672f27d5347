"""Shared pytest fixtures for fanfic downloader tests.

Fixture summary
---------------
fake_sleep     : Awaitable sleep that records delays and returns at once.
session_factory: ``FakeSessionFactory`` over an empty page table.
storage        : ``ArtifactStorage`` rooted in a temporary directory.
clock          : Manually advanced wall clock for the job store.

No test in this suite launches a browser or touches the network: browser
sessions are ``FakeSession`` objects serving scripted page tables (see
``tests/factories/browser.py``).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from fanfic_downloader.config.settings import get_settings
from fanfic_downloader.jobs.artifacts import ArtifactStorage
from tests.factories.browser import FakeSessionFactory

# Clear the lru_cache so Settings() is read fresh for the test session.
get_settings.cache_clear()


@pytest.fixture
def fake_sleep() -> Any:
    """Awaitable sleep returning immediately; ``fake_sleep.delays`` records calls."""
    delays: list[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def storage(tmp_path: Path) -> ArtifactStorage:
    return ArtifactStorage(tmp_path / "jobs")


class ManualClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()

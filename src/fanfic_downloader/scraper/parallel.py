"""Parallel fetch engine for multi-page works.

Orchestrates one multi-page fetch across several independent browser
sessions:

1. An opening session waits for the content marker of the first page, with
   retry, then reads the page count and metadata.
2. A one-page work is fetched directly on a single session.
3. Otherwise :func:`~fanfic_downloader.scraper.planner.plan_workers`
   splits the pages into contiguous ranges; one worker per range opens its
   own session, starts are staggered, and each worker walks its range
   sequentially with per-page retry and a randomised inter-page delay.
4. Pages that failed every attempt are retried once more, sequentially, on
   one fresh session after a cool-down.
5. Results are merged by page index, pages that still failed are dropped
   and reported in :class:`FetchStats`, and the survivors are joined with
   :data:`~fanfic_downloader.scraper.config.PAGE_BREAK`.

Individual page failures never raise.  An opening page that exhausts its
retries raises :class:`~fanfic_downloader.core.exceptions.FetchError`.
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Optional

import structlog

from fanfic_downloader.config.settings import get_settings
from fanfic_downloader.core.exceptions import FetchError
from fanfic_downloader.scraper.browser import BrowserSession, SessionFactory
from fanfic_downloader.scraper.config import (
    INTER_PAGE_DELAY,
    INTER_PAGE_JITTER,
    PAGE_BREAK,
    PARALLEL_CONTENT_TIMEOUT_MS,
    RETRY_ATTEMPTS,
    RETRY_BASE_DELAY,
    RETRY_GROWTH_FACTOR,
    RETRY_JITTER,
    RETRY_PASS_COOLDOWN,
    RETRY_PASS_PAGE_DELAY,
    WORKER_STAGGER_DELAY,
)
from fanfic_downloader.scraper.page_fetcher import StoryMetadata, fetch_page
from fanfic_downloader.scraper.planner import WorkerAssignment, plan_workers
from fanfic_downloader.scraper.retry import RetryFailure, with_retry
from fanfic_downloader.sites.base import SiteAdapter

logger = structlog.get_logger(__name__)

#: Called with ``(completed_pages, total_pages)`` after every page.
ProgressCallback = Callable[[int, int], None]


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass
class EngineConfig:
    """Tuning for one engine instance.  All delays are in seconds."""

    pages_per_worker: int = 15
    max_workers: int = 2
    retry_attempts: int = RETRY_ATTEMPTS
    retry_base_delay: float = RETRY_BASE_DELAY
    retry_growth_factor: float = RETRY_GROWTH_FACTOR
    retry_jitter: float = RETRY_JITTER
    inter_page_delay: float = INTER_PAGE_DELAY
    inter_page_jitter: float = INTER_PAGE_JITTER
    worker_stagger_delay: float = WORKER_STAGGER_DELAY
    retry_pass_cooldown: float = RETRY_PASS_COOLDOWN
    retry_pass_page_delay: float = RETRY_PASS_PAGE_DELAY
    content_timeout_ms: int = PARALLEL_CONTENT_TIMEOUT_MS

    @classmethod
    def from_settings(cls) -> EngineConfig:
        """Build a config whose planner limits come from the environment."""
        settings = get_settings()
        return cls(
            pages_per_worker=settings.pages_per_worker,
            max_workers=settings.max_workers,
        )


@dataclass(frozen=True)
class ChapterResult:
    """Outcome of fetching one page.  ``content`` is empty on failure."""

    index: int
    content: str
    success: bool
    error: Optional[str] = None


@dataclass
class FetchStats:
    """Aggregate statistics attached to a completed multi-page fetch."""

    total_pages: int
    successful_pages: int
    failed_pages: list[int]
    workers: int
    duration_ms: int
    retried_pages: int = 0
    assignments: list[dict] = field(default_factory=list)  # type: ignore[type-arg]

    def to_dict(self) -> dict:  # type: ignore[type-arg]
        return {
            "totalPages": self.total_pages,
            "successfulPages": self.successful_pages,
            "failedPages": list(self.failed_pages),
            "workers": self.workers,
            "durationMs": self.duration_ms,
            "retriedPages": self.retried_pages,
            "assignments": list(self.assignments),
        }


@dataclass
class FetchOutcome:
    """Merged content of a multi-page fetch."""

    content: str
    metadata: StoryMetadata
    stats: FetchStats


def merge_results(results: Iterable[ChapterResult]) -> tuple[str, list[int]]:
    """Join successful pages in index order.

    The output depends only on the set of results, never on the order in
    which workers produced them.

    Returns:
        ``(content, failed_indices)`` with ``failed_indices`` ascending.
    """
    ordered = sorted(results, key=lambda r: r.index)
    content = PAGE_BREAK.join(r.content for r in ordered if r.success)
    failed = [r.index for r in ordered if not r.success]
    return content, failed


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ParallelFetchEngine:
    """Fetches every page of one work using independent worker sessions.

    Args:
        adapter: Site adapter of the work's origin; must support direct
            page addressing.
        session_factory: Opens one :class:`BrowserSession` per call.
        config: Engine tuning; defaults to :meth:`EngineConfig.from_settings`.
        sleep: Awaitable sleep used for every pacing delay; injectable for
            tests.
    """

    def __init__(
        self,
        adapter: SiteAdapter,
        session_factory: SessionFactory,
        config: EngineConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._adapter = adapter
        self._session_factory = session_factory
        self._config = config or EngineConfig.from_settings()
        self._sleep = sleep

    async def fetch(
        self,
        url: str,
        progress: ProgressCallback | None = None,
    ) -> FetchOutcome:
        """Fetch every page of the work at *url*.

        Args:
            url: Any page of the work.
            progress: Optional callback invoked after each page.

        Returns:
            Merged content, metadata and statistics.

        Raises:
            FetchError: If the work cannot be opened; page-level failures
                never raise.
        """
        started = time.monotonic()
        total_pages, metadata = await self._open_work(url)
        log = logger.bind(site=self._adapter.site_name, total_pages=total_pages)
        log.info("work_opened", title=metadata.title)

        completed = 0

        def on_page_done() -> None:
            nonlocal completed
            completed += 1
            if progress is not None:
                progress(completed, total_pages)

        if total_pages == 1:
            assignments = [WorkerAssignment(start=1, end=1)]
        else:
            assignments = plan_workers(
                total_pages,
                self._config.pages_per_worker,
                self._config.max_workers,
            )
        log.info(
            "workers_planned",
            workers=len(assignments),
            assignments=[str(a) for a in assignments],
        )

        worker_results = await asyncio.gather(
            *(
                self._run_worker(worker_id, url, assignment, on_page_done)
                for worker_id, assignment in enumerate(assignments)
            )
        )
        results: dict[int, ChapterResult] = {
            r.index: r for worker in worker_results for r in worker
        }

        failed = sorted(i for i, r in results.items() if not r.success)
        if failed:
            log.info("retry_pass_started", pages=failed)
            await self._sleep(self._config.retry_pass_cooldown)
            for retried in await self._retry_pass(url, failed):
                if retried.success:
                    results[retried.index] = retried

        content, still_failed = merge_results(results.values())
        if still_failed:
            log.warning(
                "pages_lost",
                failed_pages=still_failed,
                errors={i: results[i].error for i in still_failed},
            )

        stats = FetchStats(
            total_pages=total_pages,
            successful_pages=total_pages - len(still_failed),
            failed_pages=still_failed,
            workers=len(assignments),
            duration_ms=int((time.monotonic() - started) * 1000),
            retried_pages=len(failed),
            assignments=[
                {"worker": i, "pages": str(a), "count": a.size}
                for i, a in enumerate(assignments)
            ],
        )
        log.info(
            "parallel_fetch_complete",
            successful_pages=stats.successful_pages,
            failed_pages=len(still_failed),
            duration_ms=stats.duration_ms,
        )
        return FetchOutcome(content=content, metadata=metadata, stats=stats)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _open_work(self, url: str) -> tuple[int, StoryMetadata]:
        """Read page count and metadata once the content marker is visible.

        Raises:
            FetchError: If the work never showed its content.
        """
        async with self._session_factory() as session:

            async def attempt() -> tuple[int, StoryMetadata]:
                await fetch_page(
                    session,
                    url,
                    content_selector=self._adapter.content_selector,
                    timeout_ms=self._config.content_timeout_ms,
                    before_extract=self._adapter.dismiss_interstitials,
                )
                return (
                    await self._adapter.page_count(session),
                    await self._adapter.metadata(session),
                )

            result = await with_retry(
                attempt,
                max_attempts=self._config.retry_attempts,
                base_delay=self._config.retry_base_delay,
                growth_factor=self._config.retry_growth_factor,
                jitter=self._config.retry_jitter,
                label="opening page",
                sleep=self._sleep,
            )
        if isinstance(result, RetryFailure):
            raise FetchError(
                f"Could not open {url} after {result.attempts} attempts: {result.error}"
            )
        total_pages, metadata = result.value
        return max(total_pages, 1), metadata

    async def _fetch_with_retry(
        self,
        session: BrowserSession,
        url: str,
        index: int,
        label: str,
    ) -> ChapterResult:
        async def attempt() -> str:
            return await self._adapter.fetch_page_at(
                session,
                url,
                index,
                timeout_ms=self._config.content_timeout_ms,
            )

        result = await with_retry(
            attempt,
            max_attempts=self._config.retry_attempts,
            base_delay=self._config.retry_base_delay,
            growth_factor=self._config.retry_growth_factor,
            jitter=self._config.retry_jitter,
            label=label,
            sleep=self._sleep,
        )
        if isinstance(result, RetryFailure):
            return ChapterResult(index=index, content="", success=False, error=result.error)
        return ChapterResult(index=index, content=result.value, success=True)

    async def _run_worker(
        self,
        worker_id: int,
        url: str,
        assignment: WorkerAssignment,
        on_page_done: Callable[[], None],
    ) -> list[ChapterResult]:
        if worker_id > 0:
            await self._sleep(worker_id * self._config.worker_stagger_delay)

        log = logger.bind(worker=worker_id, pages=str(assignment))
        log.info("worker_started")
        results: list[ChapterResult] = []
        async with self._session_factory() as session:
            for index in assignment.pages():
                result = await self._fetch_with_retry(
                    session, url, index, label=f"worker {worker_id} page {index}"
                )
                results.append(result)
                on_page_done()
                if index < assignment.end:
                    await self._sleep(
                        self._config.inter_page_delay
                        + random.uniform(0, self._config.inter_page_jitter)
                    )

        log.info(
            "worker_completed",
            successful=sum(1 for r in results if r.success),
            failed=sum(1 for r in results if not r.success),
        )
        return results

    async def _retry_pass(self, url: str, indices: list[int]) -> list[ChapterResult]:
        results: list[ChapterResult] = []
        async with self._session_factory() as session:
            for index in indices:
                await self._sleep(self._config.retry_pass_page_delay)
                result = await self._fetch_with_retry(
                    session, url, index, label=f"retry pass page {index}"
                )
                results.append(result)
        recovered = sum(1 for r in results if r.success)
        logger.info("retry_pass_complete", retried=len(indices), recovered=recovered)
        return results

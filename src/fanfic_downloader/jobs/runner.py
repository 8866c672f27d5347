"""Job execution paths.

:class:`JobRunner` turns one :class:`~fanfic_downloader.jobs.models.Job`
into rendered bytes.  It picks the execution path from the job's kind and
the origin's capabilities:

- single page: one session, one page, retried on transient failures;
- whole work on an origin with individually addressable pages: the
  :class:`~fanfic_downloader.scraper.parallel.ParallelFetchEngine`;
- whole work on any other origin: one session through the adapter's
  ``fetch_all_pages`` (e.g. an "entire work" view), retried as a whole;
- series: one session walking the series.

The runner raises on every job-fatal error; converting exceptions into a
Failed job is the store's business.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

from fanfic_downloader.config.settings import Settings, get_settings
from fanfic_downloader.core.exceptions import (
    FetchError,
    PartialContentError,
    UnsupportedContentError,
)
from fanfic_downloader.jobs.models import DownloadResult, Job, JobKind
from fanfic_downloader.rendering.renderer import DocumentRenderer, Section
from fanfic_downloader.scraper.browser import SessionFactory
from fanfic_downloader.scraper.config import DEFAULT_AUTHOR, DEFAULT_SERIES_TITLE
from fanfic_downloader.scraper.page_fetcher import StoryMetadata
from fanfic_downloader.scraper.parallel import EngineConfig, FetchStats, ParallelFetchEngine
from fanfic_downloader.scraper.retry import RetryFailure, with_retry
from fanfic_downloader.sites.base import SiteAdapter
from fanfic_downloader.sites.registry import get_adapter_class

logger = structlog.get_logger(__name__)

T = TypeVar("T")

#: Called with an overall percentage (0-100).
ProgressReporter = Callable[[int], None]

#: Share of the progress bar covered by fetching; rendering takes the rest.
FETCH_PROGRESS_SHARE = 90


def check_failed_pages(stats: FetchStats, max_failed_percent: int) -> None:
    """Fail a multi-page fetch that lost too many pages.

    A fetch with no successful page always fails.  Otherwise it fails when
    the lost share is strictly above *max_failed_percent*.

    Raises:
        PartialContentError: If the threshold is exceeded.
    """
    failed = len(stats.failed_pages)
    if failed == 0:
        return
    if stats.successful_pages == 0 or failed * 100 > max_failed_percent * stats.total_pages:
        raise PartialContentError(stats.failed_pages, stats.total_pages)


class JobRunner:
    """Executes jobs against live origins.

    Args:
        session_factory: Opens browser sessions for fetchers.
        renderer: Renders fetched markup.
        settings: Application settings; defaults to :func:`get_settings`.
        engine_config: Parallel engine tuning; defaults to values derived
            from *settings*.
        sleep: Awaitable sleep for pacing delays; injectable for tests.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        renderer: DocumentRenderer,
        *,
        settings: Settings | None = None,
        engine_config: EngineConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._session_factory = session_factory
        self._renderer = renderer
        self._settings = settings or get_settings()
        self._engine_config = engine_config or EngineConfig(
            pages_per_worker=self._settings.pages_per_worker,
            max_workers=self._settings.max_workers,
        )
        self._sleep = sleep

    async def run(self, job: Job, progress: ProgressReporter | None = None) -> DownloadResult:
        """Fetch and render *job*.

        Raises:
            FanficDownloaderError: Any job-fatal condition.
        """
        report = progress or (lambda _pct: None)
        adapter = get_adapter_class(job.source.site)(sleep=self._sleep)

        if job.kind is JobKind.SINGLE_PAGE:
            sections, metadata, extra = await self._single_page(adapter, job.source.url)
        elif job.kind is JobKind.WHOLE_WORK:
            sections, metadata, extra = await self._whole_work(adapter, job.source.url, report)
        else:
            sections, metadata, extra = await self._series(adapter, job.source.url)
        report(FETCH_PROGRESS_SHARE)

        rendered = await self._renderer.render(sections, metadata, job.output_format)
        return DownloadResult(
            data=rendered.data,
            content_type=rendered.content_type,
            extension=rendered.extension,
            metadata={**metadata.to_dict(), **extra},
        )

    async def _retrying(self, attempt_fn: Callable[[], Awaitable[T]], label: str) -> T:
        """Run *attempt_fn* under the page retry policy.

        Raises:
            FetchError: Carrying the last error once every attempt failed.
        """
        config = self._engine_config
        result = await with_retry(
            attempt_fn,
            max_attempts=config.retry_attempts,
            base_delay=config.retry_base_delay,
            growth_factor=config.retry_growth_factor,
            jitter=config.retry_jitter,
            label=label,
            sleep=self._sleep,
        )
        if isinstance(result, RetryFailure):
            raise FetchError(
                f"Failed to load {label} after {result.attempts} attempts: {result.error}"
            )
        return result.value

    # ------------------------------------------------------------------
    # Execution paths
    # ------------------------------------------------------------------

    async def _single_page(
        self,
        adapter: SiteAdapter,
        url: str,
    ) -> tuple[list[Section], StoryMetadata, dict[str, Any]]:
        async with self._session_factory() as session:

            async def attempt() -> tuple[str, StoryMetadata]:
                content = await adapter.fetch_single_page(session, url)
                return content, await adapter.metadata(session)

            content, metadata = await self._retrying(attempt, url)
        return [Section(metadata.title, content)], metadata, {}

    async def _whole_work(
        self,
        adapter: SiteAdapter,
        url: str,
        report: ProgressReporter,
    ) -> tuple[list[Section], StoryMetadata, dict[str, Any]]:
        if not adapter.supports_parallel:
            async with self._session_factory() as session:

                async def attempt() -> tuple[str, StoryMetadata]:
                    content = await adapter.fetch_all_pages(session, url)
                    return content, await adapter.metadata(session)

                content, metadata = await self._retrying(attempt, url)
            return [Section(metadata.title, content)], metadata, {}

        def on_page(completed: int, total: int) -> None:
            report(completed * FETCH_PROGRESS_SHARE // total)

        engine = ParallelFetchEngine(
            adapter,
            self._session_factory,
            self._engine_config,
            sleep=self._sleep,
        )
        outcome = await engine.fetch(url, progress=on_page)
        check_failed_pages(outcome.stats, self._settings.max_failed_pages_percent)
        return (
            [Section(outcome.metadata.title, outcome.content)],
            outcome.metadata,
            {"stats": outcome.stats.to_dict()},
        )

    async def _series(
        self,
        adapter: SiteAdapter,
        url: str,
    ) -> tuple[list[Section], StoryMetadata, dict[str, Any]]:
        if not adapter.supports_series:
            raise UnsupportedContentError(
                f"Series downloads are not supported for {adapter.site_name}"
            )
        async with self._session_factory() as session:
            works = await adapter.fetch_series(session, url, self._settings.series_max_works)
        if not works:
            raise FetchError(f"No works found in series: {url}")
        logger.info("series_fetched", works=len(works))
        sections = [Section(f"Story {i}", work) for i, work in enumerate(works, start=1)]
        metadata = StoryMetadata(title=DEFAULT_SERIES_TITLE, author=DEFAULT_AUTHOR)
        return sections, metadata, {"works": len(works)}

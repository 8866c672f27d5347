"""Abstract base class for all site adapters.

A site adapter captures everything that differs between origins: how a
URL is recognised, which selectors hold the content and metadata, how
interstitial prompts are dismissed, how many pages a work has and how to
reach page ``n`` directly.  The orchestration layers (job runner and
parallel fetch engine) only talk to this interface, so adding an origin
means adding one subclass and decorating it with
:func:`~fanfic_downloader.sites.registry.register`.

Example usage::

    from fanfic_downloader.sites.base import SiteAdapter
    from fanfic_downloader.sites.registry import register

    @register
    class ExampleAdapter(SiteAdapter):
        site_name = "example"
        hosts = ("example.org",)
        content_selector = "#chapter"

        async def fetch_all_pages(self, session, url): ...
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

import structlog

from fanfic_downloader.core.exceptions import UnsupportedContentError
from fanfic_downloader.scraper.browser import BrowserSession
from fanfic_downloader.scraper.config import (
    CONTENT_TIMEOUT_MS,
    DEFAULT_AUTHOR,
    DEFAULT_TITLE,
    PARALLEL_CONTENT_TIMEOUT_MS,
)
from fanfic_downloader.scraper.page_fetcher import StoryMetadata, fetch_page

logger = structlog.get_logger(__name__)


class SiteAdapter(ABC):
    """Capability contract implemented once per supported origin.

    Class Attributes:
        site_name: Short unique identifier (``"ao3"``, ``"ffn"``); the
            registry key and the ``site`` field of a job's source.
        hosts: Host substrings recognised by :meth:`detect`.
        content_selector: CSS selector of the element holding page content.
        title_selector: CSS selector of the work title, if any.
        author_selector: CSS selector of the author name, if any.
        supports_parallel: Whether pages are individually addressable, so
            the parallel fetch engine can split a work across workers.
        supports_series: Whether :meth:`fetch_series` is implemented.

    Args:
        sleep: Awaitable sleep used for pacing delays; injectable for tests.
    """

    site_name: str
    hosts: tuple[str, ...]
    content_selector: str
    title_selector: str | None = None
    author_selector: str | None = None
    supports_parallel: bool = False
    supports_series: bool = False

    def __init__(
        self,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    @classmethod
    def detect(cls, url: str) -> bool:
        """Return ``True`` if *url* belongs to this origin.

        A plain substring match on the host; no network call is made.
        """
        return any(host in url for host in cls.hosts)

    # ------------------------------------------------------------------
    # Abstract interface
    # ------------------------------------------------------------------

    @abstractmethod
    async def fetch_all_pages(self, session: BrowserSession, url: str) -> str:
        """Fetch a whole work on one session.

        Implementations either navigate once to an "entire work" view or
        loop over :meth:`page_count` page URLs, joining the pages with
        :data:`~fanfic_downloader.scraper.config.PAGE_BREAK`.

        Args:
            session: Browser session owned by the caller.
            url: Any page of the work.

        Returns:
            Combined content markup.

        Raises:
            FetchError: If the work cannot be fetched.
        """

    # ------------------------------------------------------------------
    # Default implementations
    # ------------------------------------------------------------------

    async def fetch_single_page(self, session: BrowserSession, url: str) -> str:
        """Navigate to *url* and return its content markup."""
        return await fetch_page(
            session,
            url,
            content_selector=self.content_selector,
            timeout_ms=CONTENT_TIMEOUT_MS,
            before_extract=self.dismiss_interstitials,
        )

    async def fetch_page_at(
        self,
        session: BrowserSession,
        url: str,
        index: int,
        *,
        timeout_ms: int = PARALLEL_CONTENT_TIMEOUT_MS,
    ) -> str:
        """Navigate directly to page *index* of the work and return it wrapped.

        Used by the parallel fetch engine; every call navigates, so a retry
        after a challenge page starts from a clean load.
        """
        html = await fetch_page(
            session,
            self.page_url(url, index),
            content_selector=self.content_selector,
            timeout_ms=timeout_ms,
            before_extract=self.dismiss_interstitials,
        )
        return self.format_page(index, html)

    async def page_count(self, session: BrowserSession) -> int:
        """Number of pages in the work the session is on.  Defaults to 1."""
        return 1

    async def metadata(self, session: BrowserSession) -> StoryMetadata:
        """Read title and author from the current page.

        Missing fields fall back to the defaults rather than failing.
        """
        title = await session.text(self.title_selector) if self.title_selector else None
        author = await session.text(self.author_selector) if self.author_selector else None
        return StoryMetadata(
            title=title or DEFAULT_TITLE,
            author=author or DEFAULT_AUTHOR,
        )

    async def dismiss_interstitials(self, session: BrowserSession) -> None:
        """Best-effort dismissal of consent and age-gate prompts.

        Never raises: a failure is logged and the fetch continues.  At worst
        the content marker wait times out afterwards, which is retried.
        """
        try:
            await self._dismiss_interstitials(session)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "interstitial_dismissal_failed",
                site=self.site_name,
                url=session.current_url,
                error=str(exc),
            )

    async def _dismiss_interstitials(self, session: BrowserSession) -> None:
        """Origin-specific dismissal.  No prompts by default."""

    def page_url(self, url: str, index: int) -> str:
        """Build the direct URL of page *index* (1-based).

        Raises:
            UnsupportedContentError: If the origin's pages are not
                individually addressable.
        """
        if index == 1:
            return url
        raise UnsupportedContentError(
            f"{self.site_name} pages cannot be addressed individually"
        )

    def current_page(self, url: str) -> int:
        """Page index that *url* points at.  Defaults to 1."""
        return 1

    async def fetch_series(
        self,
        session: BrowserSession,
        url: str,
        max_works: int,
    ) -> list[str]:
        """Fetch every work of a series, in reading order.

        Raises:
            UnsupportedContentError: If the origin has no series support.
        """
        raise UnsupportedContentError(f"Series downloads are not supported for {self.site_name}")

    @staticmethod
    def format_page(index: int, html: str) -> str:
        """Wrap one page's markup with its chapter heading."""
        return f'<div class="chapter"><h2>Chapter {index}</h2>{html}</div>'

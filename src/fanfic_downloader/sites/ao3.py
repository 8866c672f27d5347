"""Archive of Our Own adapter (archiveofourown.org).

Multi-chapter works are fetched through the archive's "Entire Work" view,
a single navigation.  Series are walked work by work through the "next in
series" link.  Two interstitials may appear before content: the adult
content warning, and the terms-of-service prompt shown to EU visitors.
"""

from __future__ import annotations

from urllib.parse import urldefrag

import structlog

from fanfic_downloader.scraper.browser import BrowserSession
from fanfic_downloader.scraper.config import CONTENT_TIMEOUT_MS
from fanfic_downloader.scraper.page_fetcher import fetch_page
from fanfic_downloader.sites.base import SiteAdapter
from fanfic_downloader.sites.registry import register

logger = structlog.get_logger(__name__)

SELECTORS: dict[str, str] = {
    "content": "#workskin",
    "entire_work_link": "li.chapter.entire a",
    "title": "h2.title",
    "author": 'a[rel="author"]',
    "tos_prompt": "#tos_prompt",
    "tos_agree_checkbox": "#tos_agree",
    "data_processing_checkbox": "#data_processing_agree",
    "accept_tos_button": "#accept_tos",
    "adult_content_link": 'a[href*="view_adult=true"]',
    "series_first_work": "ul.series li.work h4.heading a",
    "series_next_work": "span.series a.next",
}

# Pauses (ms) that let the ToS modal register clicks and fade out.
_CHECKBOX_PAUSE_MS = 300
_MODAL_FADE_MS = 1000


@register
class AO3Adapter(SiteAdapter):
    """Adapter for the archive origin."""

    site_name = "ao3"
    hosts = ("archiveofourown.org",)
    content_selector = SELECTORS["content"]
    title_selector = SELECTORS["title"]
    author_selector = SELECTORS["author"]
    supports_parallel = False
    supports_series = True

    async def _dismiss_interstitials(self, session: BrowserSession) -> None:
        # The adult warning navigates away, so the ToS prompt is checked on
        # the page it leads to.
        adult_url = await session.link_url(SELECTORS["adult_content_link"])
        if adult_url:
            logger.debug("adult_content_warning_followed", url=adult_url)
            await session.goto(adult_url)

        if not await session.is_visible(SELECTORS["tos_prompt"]):
            return
        if await session.click(SELECTORS["tos_agree_checkbox"]):
            await session.pause(_CHECKBOX_PAUSE_MS)
        if await session.click(SELECTORS["data_processing_checkbox"]):
            await session.pause(_CHECKBOX_PAUSE_MS)
        if await session.click(SELECTORS["accept_tos_button"]):
            await session.pause(_MODAL_FADE_MS)
        logger.debug("tos_prompt_accepted")

    async def fetch_all_pages(self, session: BrowserSession, url: str) -> str:
        await session.goto(url)
        return await self._fetch_current_work(session)

    async def _fetch_current_work(self, session: BrowserSession) -> str:
        """Switch the session to the entire-work view, if any, and extract it."""
        await self.dismiss_interstitials(session)
        entire_url = await session.link_url(SELECTORS["entire_work_link"])
        if entire_url:
            logger.debug("entire_work_view", url=entire_url)
            await session.goto(entire_url)
            await self.dismiss_interstitials(session)
        return await fetch_page(
            session,
            None,
            content_selector=self.content_selector,
            timeout_ms=CONTENT_TIMEOUT_MS,
        )

    async def fetch_series(
        self,
        session: BrowserSession,
        url: str,
        max_works: int,
    ) -> list[str]:
        """Fetch every work of a series by following "next in series" links.

        *url* may be a series listing (``/series/``) or any work within the
        series.  The walk is iterative: it stops when no next link exists,
        when a work is reached a second time, or after *max_works* works.

        Returns:
            Work contents in reading order.  Empty when a series listing
            contains no works.
        """
        current: str | None = url
        if "/series/" in url:
            await session.goto(url)
            await self.dismiss_interstitials(session)
            current = await session.link_url(SELECTORS["series_first_work"])
            if current is None:
                logger.info("series_empty", url=url)
                return []

        works: list[str] = []
        visited: set[str] = set()
        while current is not None:
            key = urldefrag(current).url
            if key in visited:
                logger.warning("series_cycle_detected", url=current, works=len(works))
                break
            if len(works) >= max_works:
                logger.warning("series_truncated", max_works=max_works, next_url=current)
                break
            visited.add(key)

            await session.goto(current)
            works.append(await self._fetch_current_work(session))
            logger.info("series_work_fetched", position=len(works), url=current)

            current = await session.link_url(SELECTORS["series_next_work"])

        return works

"""FanFiction.Net adapter (fanfiction.net).

Every chapter lives at its own URL, ``/s/{story_id}/{chapter}/{slug}``, so
chapters can be fetched by independent workers.  The origin sits behind
aggressive bot detection: bursts of navigations are answered with
challenge pages, which is why every loop here is paced.
"""

from __future__ import annotations

import random
import re

import structlog

from fanfic_downloader.core.exceptions import FetchError
from fanfic_downloader.scraper.browser import BrowserSession
from fanfic_downloader.scraper.config import (
    CONTENT_TIMEOUT_MS,
    INTER_PAGE_DELAY,
    INTER_PAGE_JITTER,
    PAGE_BREAK,
    RETRY_ATTEMPTS,
)
from fanfic_downloader.scraper.page_fetcher import fetch_page
from fanfic_downloader.scraper.retry import RetryFailure, with_retry
from fanfic_downloader.sites.base import SiteAdapter
from fanfic_downloader.sites.registry import register

logger = structlog.get_logger(__name__)

SELECTORS: dict[str, str] = {
    "content": "#storytext",
    "chapter_select": "select#chap_select",
    "title": "#profile_top b.xcontrast_txt",
    "author": "#profile_top a.xcontrast_txt",
}

_STORY_PATH = re.compile(r"/s/(\d+)(?:/(\d+))?")


@register
class FFNAdapter(SiteAdapter):
    """Adapter for the chaptered-fiction origin."""

    site_name = "ffn"
    hosts = ("fanfiction.net",)
    content_selector = SELECTORS["content"]
    title_selector = SELECTORS["title"]
    author_selector = SELECTORS["author"]
    supports_parallel = True
    supports_series = False

    async def page_count(self, session: BrowserSession) -> int:
        # No chapter dropdown means a one-chapter story.
        count = await session.option_count(SELECTORS["chapter_select"])
        return count if count else 1

    def page_url(self, url: str, index: int) -> str:
        """Replace (or append) the chapter segment of a story URL.

        ``/s/123/1/Title`` becomes ``/s/123/{index}/Title``; a bare
        ``/s/123`` becomes ``/s/123/{index}``.
        """
        if _STORY_PATH.search(url) is None:
            raise FetchError(f"Not a story URL: {url}")
        return _STORY_PATH.sub(lambda m: f"/s/{m.group(1)}/{index}", url, count=1)

    def current_page(self, url: str) -> int:
        match = _STORY_PATH.search(url)
        if match is None or match.group(2) is None:
            return 1
        return int(match.group(2))

    async def fetch_all_pages(self, session: BrowserSession, url: str) -> str:
        """Fetch every chapter sequentially on one session.

        Chapters other than the one *url* points at are reached through the
        chapter dropdown, falling back to direct navigation when the
        dropdown does not navigate.  A chapter that still fails after every
        retry aborts the fetch.
        """
        await session.goto(url)
        total = await self.page_count(session)
        start_page = self.current_page(url)

        chapters: list[str] = []
        for index in range(1, total + 1):
            needs_navigation = index != start_page

            async def attempt(index: int = index) -> str:
                nonlocal needs_navigation
                if needs_navigation:
                    await self._navigate_to_chapter(session, url, index)
                # Any failure below forces a fresh navigation on the next attempt.
                needs_navigation = True
                return await fetch_page(
                    session,
                    None,
                    content_selector=self.content_selector,
                    timeout_ms=CONTENT_TIMEOUT_MS,
                )

            result = await with_retry(
                attempt,
                max_attempts=RETRY_ATTEMPTS,
                label=f"chapter {index}",
                sleep=self._sleep,
            )
            if isinstance(result, RetryFailure):
                raise FetchError(
                    f"Failed to load chapter {index} after {result.attempts} attempts: "
                    f"{result.error}"
                )
            chapters.append(self.format_page(index, result.value))

            if index < total:
                await self._sleep(INTER_PAGE_DELAY + random.uniform(0, INTER_PAGE_JITTER))

        return PAGE_BREAK.join(chapters)

    async def _navigate_to_chapter(self, session: BrowserSession, url: str, index: int) -> None:
        try:
            await session.select_option(SELECTORS["chapter_select"], str(index))
        except Exception as exc:  # noqa: BLE001
            logger.debug("chapter_dropdown_failed", chapter=index, error=str(exc))
            await session.goto(self.page_url(url, index))

"""Page fetcher: navigate, wait for the content marker, extract markup.

Stateless glue between a :class:`~fanfic_downloader.scraper.browser.BrowserSession`
and the site adapters.  A content marker that never appears raises
:class:`~fanfic_downloader.core.exceptions.ContentNotFoundError`, which the
retry policy treats as transient.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from fanfic_downloader.core.exceptions import ContentNotFoundError
from fanfic_downloader.scraper.browser import BrowserSession
from fanfic_downloader.scraper.config import (
    CONTENT_TIMEOUT_MS,
    DEFAULT_AUTHOR,
    DEFAULT_TITLE,
)


@dataclass(frozen=True)
class StoryMetadata:
    """Title and author shown on the rendered document."""

    title: str = DEFAULT_TITLE
    author: str = DEFAULT_AUTHOR

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "author": self.author}


async def fetch_page(
    session: BrowserSession,
    url: Optional[str],
    *,
    content_selector: str,
    timeout_ms: int = CONTENT_TIMEOUT_MS,
    before_extract: Optional[Callable[[BrowserSession], Awaitable[None]]] = None,
) -> str:
    """Fetch one page's content markup.

    Args:
        session: Browser session owned by the caller.
        url: Page to navigate to, or ``None`` to extract from the page the
            session is already on.
        content_selector: CSS selector of the element holding the content.
        timeout_ms: How long to wait for ``content_selector``.
        before_extract: Optional hook run after navigation and before the
            wait, typically the adapter's interstitial dismissal.

    Returns:
        Inner HTML of the content element.

    Raises:
        ContentNotFoundError: If the content marker did not appear in time
            or vanished before it could be read.
    """
    if url is not None:
        await session.goto(url)
    if before_extract is not None:
        await before_extract(session)

    try:
        await session.wait_for(content_selector, timeout_ms)
    except PlaywrightTimeoutError as exc:
        raise ContentNotFoundError(content_selector, url or session.current_url) from exc

    html = await session.inner_html(content_selector)
    if html is None:
        raise ContentNotFoundError(content_selector, url or session.current_url)
    return html

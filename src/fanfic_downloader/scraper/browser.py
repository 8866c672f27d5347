"""Playwright-backed browser sessions.

A :class:`BrowserSession` is the browser capability handed to site
adapters: one Chromium launch with one page, exposing only the handful of
operations adapters need (navigate, wait for a selector, read markup,
click).  Each fetch worker owns exactly one session for its lifetime;
sessions are never shared.

Sessions are opened with :func:`open_session`, an async context manager
that closes the page, context and browser on every exit path, including
task cancellation by the job timeout::

    async with open_session(headless=True) as session:
        await session.goto(url)
        html = await session.inner_html("#storytext")

Install the browser binary once with ``playwright install chromium``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Optional

import structlog
from playwright.async_api import Page, async_playwright

from fanfic_downloader.scraper.config import (
    BROWSER_ARGS,
    NAVIGATION_TIMEOUT_MS,
    USER_AGENT,
    VIEWPORT,
)

logger = structlog.get_logger(__name__)


class BrowserSession:
    """Thin wrapper around one Playwright :class:`~playwright.async_api.Page`.

    Query helpers return ``None`` (or ``False``) when the selector matches
    nothing; they never raise for a missing element.  Navigation and
    :meth:`wait_for` raise Playwright's ``TimeoutError`` on timeout.
    """

    def __init__(self, page: Page, *, navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS) -> None:
        self._page = page
        self._navigation_timeout_ms = navigation_timeout_ms

    @property
    def current_url(self) -> str:
        return self._page.url

    async def goto(self, url: str) -> None:
        await self._page.goto(
            url,
            wait_until="networkidle",
            timeout=self._navigation_timeout_ms,
        )

    async def wait_for(self, selector: str, timeout_ms: int) -> None:
        await self._page.wait_for_selector(selector, timeout=timeout_ms)

    async def inner_html(self, selector: str) -> Optional[str]:
        element = await self._page.query_selector(selector)
        if element is None:
            return None
        return await element.inner_html()

    async def text(self, selector: str) -> Optional[str]:
        element = await self._page.query_selector(selector)
        if element is None:
            return None
        content = await element.text_content()
        return content.strip() if content else None

    async def link_url(self, selector: str) -> Optional[str]:
        """Return the resolved ``href`` of the first matching anchor."""
        element = await self._page.query_selector(selector)
        if element is None:
            return None
        return await element.evaluate("(a) => a.href")

    async def option_count(self, selector: str) -> Optional[int]:
        element = await self._page.query_selector(selector)
        if element is None:
            return None
        return await element.evaluate("(select) => select.options.length")

    async def is_visible(self, selector: str) -> bool:
        element = await self._page.query_selector(selector)
        if element is None:
            return False
        return await element.is_visible()

    async def click(self, selector: str) -> bool:
        element = await self._page.query_selector(selector)
        if element is None:
            return False
        await element.click()
        return True

    async def select_option(self, selector: str, value: str) -> None:
        """Select a dropdown value and wait for the navigation it triggers."""
        async with self._page.expect_navigation(
            wait_until="networkidle",
            timeout=self._navigation_timeout_ms,
        ):
            await self._page.select_option(selector, value)

    async def pause(self, milliseconds: int) -> None:
        await self._page.wait_for_timeout(milliseconds)

    async def set_content(self, html: str) -> None:
        await self._page.set_content(html, timeout=self._navigation_timeout_ms)

    async def pdf(self, **options: Any) -> bytes:
        """Print the current page; *options* are passed to ``Page.pdf``."""
        return await self._page.pdf(**options)


#: Zero-argument callable returning an async context manager of a session.
SessionFactory = Callable[[], AbstractAsyncContextManager[BrowserSession]]


@asynccontextmanager
async def open_session(
    *,
    headless: bool = True,
    executable_path: str | None = None,
) -> AsyncIterator[BrowserSession]:
    """Launch Chromium and yield a :class:`BrowserSession` on a fresh page.

    The browser is always closed in a ``finally`` block.

    Args:
        headless: Launch without a visible window.
        executable_path: Explicit Chromium binary, or ``None`` for the
            Playwright-managed one.
    """
    async with async_playwright() as p:
        browser = await p.chromium.launch(
            headless=headless,
            args=list(BROWSER_ARGS),
            executable_path=executable_path,
        )
        logger.debug("browser_launched", headless=headless)
        try:
            context = await browser.new_context(
                user_agent=USER_AGENT,
                viewport=VIEWPORT,
            )
            page = await context.new_page()
            # Disable the HTTP cache so every navigation reaches the origin.
            cdp = await context.new_cdp_session(page)
            await cdp.send("Network.setCacheDisabled", {"cacheDisabled": True})
            try:
                yield BrowserSession(page)
            finally:
                await page.close()
                await context.close()
        finally:
            await browser.close()
            logger.debug("browser_closed")


def session_factory(
    *,
    headless: bool = True,
    executable_path: str | None = None,
) -> SessionFactory:
    """Bind launch options into a :data:`SessionFactory`."""

    def _factory() -> AbstractAsyncContextManager[BrowserSession]:
        return open_session(headless=headless, executable_path=executable_path)

    return _factory

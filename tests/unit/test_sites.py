"""Unit tests for the site registry and the bundled site adapters.

Tests cover:
- URL detection and adapter lookup through the registry
- the page fetcher's content-marker handling
- archive adapter: interstitial dismissal, entire-work view, series walk
  with cycle and length guards
- chaptered adapter: chapter URL building, page count, sequential fetch
  with dropdown fallback and per-chapter retry
"""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from fanfic_downloader.core.exceptions import (
    ContentNotFoundError,
    FetchError,
    UnsupportedContentError,
    UnsupportedSiteError,
)
from fanfic_downloader.scraper.config import PAGE_BREAK
from fanfic_downloader.scraper.page_fetcher import fetch_page
from fanfic_downloader.sites import registry
from fanfic_downloader.sites.ao3 import SELECTORS as AO3
from fanfic_downloader.sites.ao3 import AO3Adapter
from fanfic_downloader.sites.base import SiteAdapter
from fanfic_downloader.sites.ffn import FFNAdapter
from tests.factories.browser import FakeSession
from tests.factories.sites import (
    AO3_BASE,
    ao3_series,
    ao3_work,
    ffn_chapter_body,
    ffn_chapter_url,
    ffn_story,
)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    @pytest.mark.parametrize(
        ("url", "site"),
        [
            ("https://archiveofourown.org/works/123", "ao3"),
            ("https://archiveofourown.org/series/9", "ao3"),
            ("https://www.fanfiction.net/s/123/1/Title", "ffn"),
            ("https://m.fanfiction.net/s/123", "ffn"),
            ("https://example.com/story/1", None),
        ],
    )
    def test_detect_site(self, url: str, site: str | None) -> None:
        assert registry.detect_site(url) == site

    def test_get_adapter_returns_instance(self) -> None:
        assert isinstance(registry.get_adapter("https://www.fanfiction.net/s/1"), FFNAdapter)

    def test_get_adapter_rejects_unknown_site(self) -> None:
        with pytest.raises(UnsupportedSiteError):
            registry.get_adapter("https://example.com/story/1")

    def test_get_adapter_class_unknown_name(self) -> None:
        with pytest.raises(KeyError):
            registry.get_adapter_class("nope")

    def test_list_sites_reports_capabilities(self) -> None:
        sites = {s["site_name"]: s for s in registry.list_sites()}

        assert sites["ffn"]["supports_parallel"] is True
        assert sites["ffn"]["supports_series"] is False
        assert sites["ao3"]["supports_series"] is True
        assert "archiveofourown.org" in sites["ao3"]["hosts"]

    def test_register_adds_new_adapter(self) -> None:
        @registry.register
        class ExampleAdapter(SiteAdapter):
            site_name = "example-test"
            hosts = ("stories.example.test",)
            content_selector = "#chapter"

            async def fetch_all_pages(self, session: Any, url: str) -> str:
                return ""

        try:
            assert registry.detect_site("https://stories.example.test/1") == "example-test"
        finally:
            registry._REGISTRY.pop("example-test", None)


# ---------------------------------------------------------------------------
# Page fetcher
# ---------------------------------------------------------------------------


class TestFetchPage:
    @pytest.mark.asyncio
    async def test_returns_content_markup(self) -> None:
        url = "https://example.test/page"
        session = FakeSession({url: {"#content": "<p>Body</p>"}})

        html = await fetch_page(session, url, content_selector="#content")

        assert html == "<p>Body</p>"
        assert session.navigations == [url]

    @pytest.mark.asyncio
    async def test_missing_marker_raises_content_not_found(self) -> None:
        url = "https://example.test/challenge"
        session = FakeSession({url: {"#cf-challenge": "Checking your browser"}})

        with pytest.raises(ContentNotFoundError) as exc_info:
            await fetch_page(session, url, content_selector="#storytext", timeout_ms=10)

        assert exc_info.value.selector == "#storytext"
        assert exc_info.value.url == url


# ---------------------------------------------------------------------------
# Archive adapter
# ---------------------------------------------------------------------------


class TestAO3Adapter:
    @pytest.mark.asyncio
    async def test_single_page_with_metadata(self) -> None:
        url, page = ao3_work(1, title="A Title", author="writer", body="<p>Text</p>")
        session = FakeSession({url: page})
        adapter = AO3Adapter()

        html = await adapter.fetch_single_page(session, url)
        meta = await adapter.metadata(session)

        assert html == "<p>Text</p>"
        assert (meta.title, meta.author) == ("A Title", "writer")

    @pytest.mark.asyncio
    async def test_metadata_falls_back_to_defaults(self) -> None:
        session = FakeSession({})
        meta = await AO3Adapter().metadata(session)
        assert (meta.title, meta.author) == ("Fanfic Story", "Unknown")

    @pytest.mark.asyncio
    async def test_dismisses_adult_warning_and_terms_prompt(self) -> None:
        url = f"{AO3_BASE}/works/2"
        adult = f"{url}?view_adult=true"
        pages = {
            url: {AO3["adult_content_link"]: adult},
            adult: {
                AO3["tos_prompt"]: "",
                AO3["tos_agree_checkbox"]: "",
                AO3["data_processing_checkbox"]: "",
                AO3["accept_tos_button"]: "",
                AO3["content"]: "<p>Adult work</p>",
            },
        }
        session = FakeSession(pages)

        html = await AO3Adapter().fetch_single_page(session, url)

        assert html == "<p>Adult work</p>"
        assert session.navigations == [url, adult]
        assert session.clicks == [
            AO3["tos_agree_checkbox"],
            AO3["data_processing_checkbox"],
            AO3["accept_tos_button"],
        ]
        assert session.pauses == [300, 300, 1000]

    @pytest.mark.asyncio
    async def test_dismissal_errors_are_swallowed(self) -> None:
        session = MagicMock()
        session.current_url = "https://archiveofourown.org/works/3"
        session.link_url = AsyncMock(side_effect=RuntimeError("page crashed"))

        await AO3Adapter().dismiss_interstitials(session)

    @pytest.mark.asyncio
    async def test_whole_work_uses_entire_work_view(self) -> None:
        url = f"{AO3_BASE}/works/4/chapters/1"
        full = f"{AO3_BASE}/works/4?view_full_work=true"
        pages = {
            url: {AO3["entire_work_link"]: full, AO3["content"]: "<p>Chapter 1 only</p>"},
            full: {AO3["content"]: "<p>Every chapter</p>"},
        }
        session = FakeSession(pages)

        html = await AO3Adapter().fetch_all_pages(session, url)

        assert html == "<p>Every chapter</p>"
        assert session.navigations == [url, full]

    @pytest.mark.asyncio
    async def test_series_listing_walks_next_links_in_order(self) -> None:
        series_url, pages = ao3_series(7, [101, 102, 103])
        session = FakeSession(pages)

        works = await AO3Adapter().fetch_series(session, series_url, max_works=50)

        assert works == ["<p>Work 101</p>", "<p>Work 102</p>", "<p>Work 103</p>"]

    @pytest.mark.asyncio
    async def test_series_from_work_url(self) -> None:
        _, pages = ao3_series(8, [201, 202])
        session = FakeSession(pages)

        works = await AO3Adapter().fetch_series(session, f"{AO3_BASE}/works/201", max_works=50)

        assert works == ["<p>Work 201</p>", "<p>Work 202</p>"]

    @pytest.mark.asyncio
    async def test_series_cycle_stops_walk(self) -> None:
        first, first_page = ao3_work(301, next_work=f"{AO3_BASE}/works/302")
        second, second_page = ao3_work(302, next_work=f"{first}#main")
        session = FakeSession({first: first_page, second: second_page})

        works = await AO3Adapter().fetch_series(session, first, max_works=50)

        assert works == ["<p>Work 301</p>", "<p>Work 302</p>"]

    @pytest.mark.asyncio
    async def test_series_stops_at_max_works(self) -> None:
        series_url, pages = ao3_series(9, [401, 402, 403, 404])
        session = FakeSession(pages)

        works = await AO3Adapter().fetch_series(session, series_url, max_works=2)

        assert works == ["<p>Work 401</p>", "<p>Work 402</p>"]

    @pytest.mark.asyncio
    async def test_empty_series_listing(self) -> None:
        series_url, pages = ao3_series(10, [])
        assert await AO3Adapter().fetch_series(FakeSession(pages), series_url, 50) == []

    def test_pages_are_not_individually_addressable(self) -> None:
        adapter = AO3Adapter()
        assert adapter.page_url(f"{AO3_BASE}/works/1", 1) == f"{AO3_BASE}/works/1"
        with pytest.raises(UnsupportedContentError):
            adapter.page_url(f"{AO3_BASE}/works/1", 2)


# ---------------------------------------------------------------------------
# Chaptered adapter
# ---------------------------------------------------------------------------


class TestFFNAdapter:
    @pytest.mark.parametrize(
        ("url", "index", "expected"),
        [
            (
                "https://www.fanfiction.net/s/123/1/Some-Title",
                5,
                "https://www.fanfiction.net/s/123/5/Some-Title",
            ),
            ("https://www.fanfiction.net/s/123/4", 2, "https://www.fanfiction.net/s/123/2"),
            ("https://www.fanfiction.net/s/123", 3, "https://www.fanfiction.net/s/123/3"),
        ],
    )
    def test_page_url(self, url: str, index: int, expected: str) -> None:
        assert FFNAdapter().page_url(url, index) == expected

    def test_page_url_rejects_non_story_url(self) -> None:
        with pytest.raises(FetchError):
            FFNAdapter().page_url("https://www.fanfiction.net/u/55/Author", 2)

    def test_current_page(self) -> None:
        adapter = FFNAdapter()
        assert adapter.current_page("https://www.fanfiction.net/s/9/7/T") == 7
        assert adapter.current_page("https://www.fanfiction.net/s/9") == 1

    @pytest.mark.asyncio
    async def test_page_count(self) -> None:
        url, pages = ffn_story(story_id=20, chapters=12)
        session = FakeSession(pages)
        await session.goto(url)
        assert await FFNAdapter().page_count(session) == 12

    @pytest.mark.asyncio
    async def test_page_count_without_dropdown_is_one(self) -> None:
        url, pages = ffn_story(story_id=21, chapters=1)
        session = FakeSession(pages)
        await session.goto(url)
        assert await FFNAdapter().page_count(session) == 1

    @pytest.mark.asyncio
    async def test_fetch_all_pages_sequentially(self, fake_sleep: Any) -> None:
        url, pages = ffn_story(story_id=22, chapters=3, dropdown_on_every_page=False)
        session = FakeSession(pages)

        html = await FFNAdapter(sleep=fake_sleep).fetch_all_pages(session, url)

        assert html == PAGE_BREAK.join(
            SiteAdapter.format_page(i, ffn_chapter_body(i)) for i in (1, 2, 3)
        )
        # Chapter 2 through the dropdown; chapter 3 by direct navigation
        # because chapter 2's page has no dropdown.
        assert session.navigations == [url, ffn_chapter_url(22, 2), ffn_chapter_url(22, 3)]
        assert len(fake_sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_fetch_all_pages_retries_a_chapter(self, fake_sleep: Any) -> None:
        url, pages = ffn_story(story_id=23, chapters=2)
        session = FakeSession(pages, flaky={ffn_chapter_url(23, 2): 1})

        html = await FFNAdapter(sleep=fake_sleep).fetch_all_pages(session, url)

        assert ffn_chapter_body(2) in html
        assert session.navigations.count(ffn_chapter_url(23, 2)) == 2

    @pytest.mark.asyncio
    async def test_fetch_all_pages_fails_after_retries(self, fake_sleep: Any) -> None:
        url, pages = ffn_story(story_id=24, chapters=2)
        session = FakeSession(pages, flaky={ffn_chapter_url(24, 2): 10})

        with pytest.raises(FetchError, match="Failed to load chapter 2 after 3 attempts"):
            await FFNAdapter(sleep=fake_sleep).fetch_all_pages(session, url)

    @pytest.mark.asyncio
    async def test_fetch_page_at_wraps_chapter(self) -> None:
        url, pages = ffn_story(story_id=25, chapters=4)
        session = FakeSession(pages)

        html = await FFNAdapter().fetch_page_at(session, url, 3)

        assert html == SiteAdapter.format_page(3, ffn_chapter_body(3))
        assert session.navigations == [ffn_chapter_url(25, 3)]

    @pytest.mark.asyncio
    async def test_series_not_supported(self) -> None:
        with pytest.raises(UnsupportedContentError):
            await FFNAdapter().fetch_series(FakeSession({}), ffn_chapter_url(26, 1), 10)

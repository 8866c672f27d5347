"""Page tables imitating the supported archives, plus request payload factories.

Usage::

    from tests.factories.sites import ffn_story, JobRequestFactory

    url, pages = ffn_story(story_id=42, chapters=3)
    payload = JobRequestFactory(kind="series")
"""

from __future__ import annotations

import factory

from fanfic_downloader.sites.ao3 import SELECTORS as AO3
from fanfic_downloader.sites.ffn import SELECTORS as FFN
from tests.factories.browser import PageTable

FFN_BASE = "https://www.fanfiction.net"
AO3_BASE = "https://archiveofourown.org"


def ffn_chapter_url(story_id: int, chapter: int, slug: str = "A-Story") -> str:
    return f"{FFN_BASE}/s/{story_id}/{chapter}/{slug}"


def ffn_chapter_body(chapter: int) -> str:
    return f"<p>Chapter body {chapter}</p>"


def ffn_story(
    story_id: int = 1000,
    chapters: int = 3,
    *,
    title: str = "A Story",
    author: str = "Some Writer",
    dropdown_on_every_page: bool = True,
) -> tuple[str, PageTable]:
    """Build the page table of a chaptered story.

    Returns:
        ``(url_of_chapter_1, pages)``.  Stories with one chapter have no
        chapter dropdown, as on the live site.
    """
    urls = [ffn_chapter_url(story_id, i) for i in range(1, chapters + 1)]
    pages: PageTable = {}
    for i, url in enumerate(urls, start=1):
        page = {
            FFN["content"]: ffn_chapter_body(i),
            FFN["title"]: title,
            FFN["author"]: author,
        }
        if chapters > 1 and (dropdown_on_every_page or i == 1):
            page[FFN["chapter_select"]] = list(urls)
        pages[url] = page
    return urls[0], pages


def ao3_work(
    work_id: int,
    *,
    title: str = "A Work",
    author: str = "some_author",
    body: str | None = None,
    next_work: str | None = None,
) -> tuple[str, dict]:
    """Build one single-page work.  Returns ``(url, page)``."""
    url = f"{AO3_BASE}/works/{work_id}"
    page = {
        AO3["content"]: body if body is not None else f"<p>Work {work_id}</p>",
        AO3["title"]: title,
        AO3["author"]: author,
    }
    if next_work is not None:
        page[AO3["series_next_work"]] = next_work
    return url, page


def ao3_series(series_id: int, work_ids: list[int]) -> tuple[str, PageTable]:
    """Build a series listing and its works, chained by "next" links."""
    pages: PageTable = {}
    urls = [f"{AO3_BASE}/works/{w}" for w in work_ids]
    for i, work_id in enumerate(work_ids):
        next_url = urls[i + 1] if i + 1 < len(urls) else None
        url, page = ao3_work(work_id, title=f"Part {i + 1}", next_work=next_url)
        pages[url] = page
    series_url = f"{AO3_BASE}/series/{series_id}"
    pages[series_url] = {AO3["series_first_work"]: urls[0]} if urls else {}
    return series_url, pages


class JobRequestFactory(factory.DictFactory):
    """``POST /api/jobs`` body for a single chapter PDF."""

    source = factory.Sequence(lambda n: ffn_chapter_url(5000 + n, 1))
    kind = "single-page"
    format = "pdf"


class DownloadRequestFactory(factory.DictFactory):
    """``POST /api/download/...`` body."""

    url = factory.Sequence(lambda n: f"{AO3_BASE}/works/{9000 + n}")
    type = "epub"

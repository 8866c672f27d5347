"""Result renderer: merged markup to PDF or EPUB bytes.

PDF output is printed by headless Chromium through the same
:class:`~fanfic_downloader.scraper.browser.BrowserSession` capability the
fetchers use.  EPUB output is assembled with ``ebooklib``: one XHTML
document per section, a navigation document and an NCX table of contents.
"""

from __future__ import annotations

import asyncio
import html
import io
import uuid
from collections.abc import Sequence
from dataclasses import dataclass

import structlog
from ebooklib import epub

from fanfic_downloader.core.exceptions import RenderError
from fanfic_downloader.jobs.models import OutputFormat
from fanfic_downloader.scraper.browser import SessionFactory
from fanfic_downloader.scraper.config import PAGE_BREAK
from fanfic_downloader.scraper.page_fetcher import StoryMetadata

logger = structlog.get_logger(__name__)

PDF_OPTIONS: dict = {  # type: ignore[type-arg]
    "format": "A4",
    "margin": {"top": "20mm", "bottom": "20mm", "left": "20mm", "right": "20mm"},
    "display_header_footer": True,
    "header_template": (
        '<div style="font-size: 10px; text-align: center; width: 100%;">'
        "Downloaded using fanfic downloader</div>"
    ),
    "footer_template": (
        '<div style="font-size: 10px; text-align: center; width: 100%;">'
        'Page <span class="pageNumber"></span> of <span class="totalPages"></span></div>'
    ),
}

_EPUB_CSS = """
body { font-family: serif; line-height: 1.5; margin: 0.5em; }
.chapter h2 { text-align: center; margin: 1em 0; }
p { margin: 0 0 0.6em 0; }
"""


@dataclass(frozen=True)
class Section:
    """One titled unit of the output document (a work or a story)."""

    title: str
    html: str


@dataclass(frozen=True)
class RenderedDocument:
    data: bytes
    content_type: str
    extension: str


class DocumentRenderer:
    """Renders sections of markup into the requested output format.

    Args:
        session_factory: Opens the browser session used to print PDFs.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def render(
        self,
        sections: Sequence[Section],
        metadata: StoryMetadata,
        fmt: OutputFormat,
    ) -> RenderedDocument:
        """Render *sections* in order.

        Raises:
            RenderError: If the document could not be produced.
        """
        if not sections:
            raise RenderError("Nothing to render")
        try:
            if fmt is OutputFormat.PDF:
                data = await self._render_pdf(sections, metadata)
            else:
                data = await asyncio.to_thread(build_epub, sections, metadata)
        except RenderError:
            raise
        except Exception as exc:
            raise RenderError(f"Failed to render {fmt.value}: {exc}") from exc

        logger.info("document_rendered", format=fmt.value, size_bytes=len(data), sections=len(sections))
        return RenderedDocument(data=data, content_type=fmt.content_type, extension=fmt.extension)

    async def _render_pdf(self, sections: Sequence[Section], metadata: StoryMetadata) -> bytes:
        body = PAGE_BREAK.join(section.html for section in sections)
        document = (
            "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
            f"<title>{html.escape(metadata.title)}</title></head>"
            f"<body>{body}</body></html>"
        )
        async with self._session_factory() as session:
            await session.set_content(document)
            return await session.pdf(**PDF_OPTIONS)


def build_epub(sections: Sequence[Section], metadata: StoryMetadata) -> bytes:
    """Assemble an EPUB container in memory.  Blocking; run in a thread."""
    book = epub.EpubBook()
    book.set_identifier(f"urn:uuid:{uuid.uuid4()}")
    book.set_title(metadata.title)
    book.set_language("en")
    book.add_author(metadata.author)

    css_item = epub.EpubItem(
        uid="style_default",
        file_name="style/default.css",
        media_type="text/css",
        content=_EPUB_CSS,
    )
    book.add_item(css_item)

    chapters = []
    for i, section in enumerate(sections, start=1):
        chapter = epub.EpubHtml(title=section.title, file_name=f"section_{i:03d}.xhtml", lang="en")
        chapter.content = f"<h1>{html.escape(section.title)}</h1>{section.html}"
        chapter.add_item(css_item)
        book.add_item(chapter)
        chapters.append(chapter)

    book.toc = tuple(chapters)
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    book.spine = ["nav"] + chapters

    buffer = io.BytesIO()
    epub.write_epub(buffer, book)
    return buffer.getvalue()

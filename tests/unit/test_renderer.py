"""Unit tests for PDF and EPUB rendering."""

from __future__ import annotations

import io
import zipfile

import pytest

from fanfic_downloader.core.exceptions import RenderError
from fanfic_downloader.jobs.models import OutputFormat
from fanfic_downloader.rendering.renderer import (
    PDF_OPTIONS,
    DocumentRenderer,
    Section,
    build_epub,
)
from fanfic_downloader.scraper.config import PAGE_BREAK
from fanfic_downloader.scraper.page_fetcher import StoryMetadata
from tests.factories.browser import FakeSessionFactory

META = StoryMetadata(title="Tea & Biscuits", author="A. Writer")


class TestBuildEpub:
    def test_produces_epub_container(self) -> None:
        data = build_epub([Section("Story 1", "<p>One</p>"), Section("Story 2", "<p>Two</p>")], META)

        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            assert archive.read("mimetype") == b"application/epub+zip"
            names = archive.namelist()
            opf = next(archive.read(n).decode() for n in names if n.endswith(".opf"))

        assert sum(1 for n in names if "section_" in n) == 2
        assert "Tea &amp; Biscuits" in opf
        assert "A. Writer" in opf


class TestDocumentRenderer:
    @pytest.mark.asyncio
    async def test_pdf_joins_sections_with_page_breaks(self) -> None:
        factory = FakeSessionFactory()
        renderer = DocumentRenderer(factory)

        doc = await renderer.render(
            [Section("a", "<p>A</p>"), Section("b", "<p>B</p>")], META, OutputFormat.PDF
        )

        session = factory.sessions[0]
        assert doc.content_type == "application/pdf"
        assert doc.extension == "pdf"
        assert f"<p>A</p>{PAGE_BREAK}<p>B</p>" in (session.content or "")
        assert "<title>Tea &amp; Biscuits</title>" in (session.content or "")
        assert session.pdf_options == PDF_OPTIONS
        assert session.closed is True

    @pytest.mark.asyncio
    async def test_epub_does_not_open_a_browser(self) -> None:
        factory = FakeSessionFactory()

        doc = await DocumentRenderer(factory).render(
            [Section("a", "<p>A</p>")], META, OutputFormat.EPUB
        )

        assert doc.content_type == "application/epub+zip"
        assert zipfile.is_zipfile(io.BytesIO(doc.data))
        assert factory.sessions == []

    @pytest.mark.asyncio
    async def test_empty_input_raises(self) -> None:
        with pytest.raises(RenderError):
            await DocumentRenderer(FakeSessionFactory()).render([], META, OutputFormat.PDF)

    @pytest.mark.asyncio
    async def test_backend_failure_is_wrapped(self) -> None:
        def broken_factory():  # noqa: ANN202
            raise RuntimeError("browser missing")

        with pytest.raises(RenderError, match="browser missing"):
            await DocumentRenderer(broken_factory).render(
                [Section("a", "<p>A</p>")], META, OutputFormat.PDF
            )

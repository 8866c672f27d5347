"""Route tests for the synchronous ``/api/download/*`` endpoints.

A stub runner replaces the real one on ``app.state``; the routes are
checked for kind mapping, response headers and error translation.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from playwright.async_api import Error as PlaywrightError

from fanfic_downloader.api.main import create_app
from fanfic_downloader.core.exceptions import FetchError
from fanfic_downloader.jobs.models import DownloadResult, Job, JobKind
from fanfic_downloader.jobs.runner import ProgressReporter
from tests.factories.sites import DownloadRequestFactory


class StubRunner:
    """Records the jobs it is asked to run and returns a canned document."""

    def __init__(self, error: Exception | None = None) -> None:
        self.jobs: list[Job] = []
        self.error = error

    async def run(self, job: Job, progress: ProgressReporter | None = None) -> DownloadResult:
        self.jobs.append(job)
        if self.error is not None:
            raise self.error
        fmt = job.output_format
        return DownloadResult(
            data=b"document-bytes",
            content_type=fmt.content_type,
            extension=fmt.extension,
        )


@pytest.fixture
def runner() -> StubRunner:
    return StubRunner()


@pytest.fixture
def app(runner: StubRunner) -> FastAPI:
    application = create_app()
    application.state.job_runner = runner
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


class TestDownloadRoutes:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("path", "kind"),
        [
            ("single-chapter", JobKind.SINGLE_PAGE),
            ("multi-chapter", JobKind.WHOLE_WORK),
            ("series", JobKind.SERIES),
        ],
    )
    async def test_returns_attachment(
        self, client: AsyncClient, runner: StubRunner, path: str, kind: JobKind
    ) -> None:
        response = await client.post(f"/api/download/{path}", json=DownloadRequestFactory())

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/epub+zip"
        assert response.headers["content-disposition"] == 'attachment; filename="download.epub"'
        assert response.content == b"document-bytes"
        assert runner.jobs[-1].kind is kind

    @pytest.mark.asyncio
    async def test_pdf_type(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/download/single-chapter", json=DownloadRequestFactory(type="pdf")
        )

        assert response.headers["content-type"] == "application/pdf"

    @pytest.mark.asyncio
    async def test_unsupported_site_is_400(self, client: AsyncClient, runner: StubRunner) -> None:
        response = await client.post(
            "/api/download/single-chapter",
            json=DownloadRequestFactory(url="https://example.com/x"),
        )

        assert response.status_code == 400
        assert "Unsupported site" in response.json()["error"]
        assert runner.jobs == []

    @pytest.mark.asyncio
    async def test_series_on_chaptered_origin_is_400(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/download/series",
            json=DownloadRequestFactory(url="https://www.fanfiction.net/s/1/1/T"),
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_fetch_failure_is_500(self, app: FastAPI, client: AsyncClient) -> None:
        app.state.job_runner = StubRunner(error=FetchError("No works found in series"))

        response = await client.post("/api/download/series", json=DownloadRequestFactory())

        assert response.status_code == 500
        assert response.json() == {
            "error": "Failed to generate download",
            "message": "No works found in series",
        }

    @pytest.mark.asyncio
    async def test_browser_error_is_500_with_body(self, app: FastAPI, client: AsyncClient) -> None:
        app.state.job_runner = StubRunner(
            error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED at https://archiveofourown.org")
        )

        response = await client.post("/api/download/multi-chapter", json=DownloadRequestFactory())

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Failed to generate download"
        assert "ERR_NAME_NOT_RESOLVED" in body["message"]

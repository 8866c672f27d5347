"""Synchronous download routes.

The request stays open until the document is rendered and the bytes are
returned in the response body.  These routes bypass the job queue and are
meant for short fetches; long works should go through ``/api/jobs``.

``POST /api/download/single-chapter``
``POST /api/download/multi-chapter``
``POST /api/download/series``
    Body ``{"url": ..., "type": "pdf" | "epub"}``.
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import APIRouter, Response, status
from fastapi.responses import JSONResponse

from fanfic_downloader.api.dependencies import JobRunnerDep
from fanfic_downloader.core.exceptions import (
    JobValidationError,
    UnsupportedSiteError,
)
from fanfic_downloader.core.schemas.jobs import DownloadRequest
from fanfic_downloader.jobs.models import Job, JobKind
from fanfic_downloader.jobs.runner import JobRunner
from fanfic_downloader.jobs.validation import supported_hosts, validate_request

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["downloads"])


async def _download(runner: JobRunner, payload: DownloadRequest, kind: JobKind) -> Response:
    try:
        job_kind, source, fmt = validate_request(payload.url, kind.value, payload.type)
    except UnsupportedSiteError:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": f"Unsupported site. Supported: {', '.join(supported_hosts())}"},
        )
    except JobValidationError as exc:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})

    job = Job(
        id=str(uuid.uuid4()),
        kind=job_kind,
        source=source,
        output_format=fmt,
        created_at=time.time(),
    )
    log = logger.bind(kind=job_kind.value, site=source.site, format=fmt.value)
    log.info("sync_download_started", url=source.url)
    try:
        result = await runner.run(job)
    except Exception as exc:
        log.error("sync_download_failed", error=str(exc), error_type=type(exc).__name__)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to generate download", "message": str(exc)},
        )

    log.info("sync_download_completed", size_bytes=len(result.data))
    return Response(
        content=result.data,
        media_type=result.content_type,
        headers={"Content-Disposition": f'attachment; filename="download.{result.extension}"'},
    )


@router.post("/single-chapter")
async def download_single_chapter(payload: DownloadRequest, runner: JobRunnerDep) -> Response:
    return await _download(runner, payload, JobKind.SINGLE_PAGE)


@router.post("/multi-chapter")
async def download_multi_chapter(payload: DownloadRequest, runner: JobRunnerDep) -> Response:
    return await _download(runner, payload, JobKind.WHOLE_WORK)


@router.post("/series")
async def download_series(payload: DownloadRequest, runner: JobRunnerDep) -> Response:
    return await _download(runner, payload, JobKind.SERIES)

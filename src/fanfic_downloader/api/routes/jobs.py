"""Asynchronous download job routes.

``POST /api/jobs``
    Validate and queue a job.  ``202`` with the job id.

``GET /api/jobs/stats``
    Scheduler counters.

``GET /api/jobs/{job_id}``
    Job status view, including the queue position while pending.

``GET /api/jobs/{job_id}/result``
    Stream the artifact.  The job and its file are deleted once the body
    has been sent, so a result can be fetched exactly once.

``DELETE /api/jobs/{job_id}``
    Cancel a pending job.

Error bodies are ``{"error": "..."}``, the shape the extension parses.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, status
from fastapi.responses import FileResponse, JSONResponse
from starlette.background import BackgroundTask

from fanfic_downloader.api.dependencies import JobStoreDep
from fanfic_downloader.core.exceptions import (
    ArtifactMissingError,
    JobNotFoundError,
    JobNotReadyError,
    JobValidationError,
    UnsupportedSiteError,
)
from fanfic_downloader.core.schemas.jobs import (
    JobCancelled,
    JobCreate,
    JobCreated,
    JobView,
    QueueStats,
)
from fanfic_downloader.jobs.models import JobStatus
from fanfic_downloader.jobs.validation import supported_hosts, validate_request

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["jobs"])


def _error(status_code: int, message: str, **extra: object) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


@router.post(
    "",
    response_model=JobCreated,
    status_code=status.HTTP_202_ACCEPTED,
    responses={400: {"description": "Invalid kind, format or source"}},
)
async def create_job(payload: JobCreate, store: JobStoreDep):
    """Queue a download job."""
    try:
        kind, source, fmt = validate_request(payload.source, payload.kind, payload.format)
    except UnsupportedSiteError:
        return _error(
            status.HTTP_400_BAD_REQUEST,
            f"Unsupported site. Supported: {', '.join(supported_hosts())}",
        )
    except JobValidationError as exc:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    job_id = await store.submit(kind, source, fmt)
    return JobCreated(job_id=job_id, status=JobStatus.PENDING)


@router.get("/stats", response_model=QueueStats)
async def get_stats(store: JobStoreDep) -> QueueStats:
    return await store.stats()


@router.get(
    "/{job_id}",
    response_model=JobView,
    responses={404: {"description": "Job not found"}},
)
async def get_job(job_id: str, store: JobStoreDep):
    try:
        return await store.status(job_id)
    except JobNotFoundError:
        return _error(status.HTTP_404_NOT_FOUND, "Job not found")


@router.get(
    "/{job_id}/result",
    response_class=FileResponse,
    responses={
        400: {"description": "Job not completed"},
        404: {"description": "Job or result file not found"},
    },
)
async def get_job_result(job_id: str, store: JobStoreDep):
    """Stream a completed job's file once, then delete the file.

    The job is claimed before streaming starts, so a concurrent or repeated
    request gets a 404.
    """
    try:
        artifact = await store.claim_result(job_id)
    except ArtifactMissingError:
        return _error(status.HTTP_404_NOT_FOUND, "File not found on disk")
    except JobNotFoundError:
        return _error(status.HTTP_404_NOT_FOUND, "Job not found")
    except JobNotReadyError as exc:
        extra = {"message": exc.reason} if exc.reason else {}
        return _error(status.HTTP_400_BAD_REQUEST, "Job not completed", status=exc.status, **extra)

    async def _consume() -> None:
        await store.discard_artifact(artifact)
        logger.info("result_delivered", job_id=job_id)

    extension = artifact.path.suffix.lstrip(".")
    return FileResponse(
        artifact.path,
        media_type=artifact.content_type,
        filename=f"download.{extension}",
        background=BackgroundTask(_consume),
    )


@router.delete(
    "/{job_id}",
    response_model=JobCancelled,
    responses={
        400: {"description": "Job is not pending"},
        404: {"description": "Job not found"},
    },
)
async def cancel_job(job_id: str, store: JobStoreDep):
    try:
        cancelled = await store.cancel(job_id)
    except JobNotFoundError:
        return _error(status.HTTP_404_NOT_FOUND, "Job not found")
    if not cancelled:
        try:
            view = await store.status(job_id)
        except JobNotFoundError:
            return _error(status.HTTP_404_NOT_FOUND, "Job not found")
        return _error(
            status.HTTP_400_BAD_REQUEST,
            "Can only cancel pending jobs",
            status=view.status.value,
        )
    return JobCancelled(job_id=job_id)

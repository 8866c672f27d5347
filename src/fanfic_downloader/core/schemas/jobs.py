"""Pydantic request/response schemas for download jobs.

Used by the job and download API routes for validation, serialisation and
OpenAPI documentation generation.  Responses use camelCase keys, the
convention of the browser extension and website that poll these routes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fanfic_downloader.jobs.models import Job, JobStatus

_camel = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _as_datetime(timestamp: Optional[float]) -> Optional[datetime]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


class JobCreate(BaseModel):
    """Payload for submitting a download job.

    Fields are kept as loose strings so that an invalid kind or format is
    reported with the job API's own 400 error body rather than FastAPI's
    422 validation error.

    Attributes:
        source: URL of a page, work or series.  ``url`` is accepted as an
            alias.
        kind: ``single-page``, ``multi-page-whole-work`` or ``series``.
        format: ``pdf`` or ``epub`` (``e-book`` and ``ebook`` are aliases).
    """

    source: Optional[str] = Field(default=None, validation_alias=AliasChoices("source", "url"))
    kind: Optional[str] = None
    format: Optional[str] = None


class JobCreated(BaseModel):
    """Response of a successful submission."""

    model_config = _camel

    job_id: str
    status: JobStatus
    message: str = "Job queued for processing"


class JobSourceView(BaseModel):
    url: str
    site: str


class JobView(BaseModel):
    """Read-only projection of a job.  Never carries artifact bytes."""

    model_config = _camel

    id: str
    kind: str
    source: JobSourceView
    format: str
    status: JobStatus
    progress: int
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    has_result: bool = False
    queue_position: Optional[int] = None
    metadata: Optional[dict[str, Any]] = None

    @classmethod
    def from_job(cls, job: Job, queue_position: Optional[int] = None) -> JobView:
        """Project *job*; *queue_position* is 1-based and only kept while pending."""
        return cls(
            id=job.id,
            kind=job.kind.value,
            source=JobSourceView(url=job.source.url, site=job.source.site),
            format=job.output_format.value,
            status=job.status,
            progress=job.progress,
            created_at=_as_datetime(job.created_at),
            started_at=_as_datetime(job.started_at),
            completed_at=_as_datetime(job.completed_at),
            error=job.error,
            has_result=job.result is not None,
            queue_position=queue_position if job.status is JobStatus.PENDING else None,
            metadata=dict(job.metadata) if job.status is JobStatus.COMPLETED else None,
        )


class QueueStats(BaseModel):
    """Scheduler counters."""

    active: int
    pending: int
    capacity: int
    total: int


class JobCancelled(BaseModel):
    model_config = _camel

    message: str = "Job cancelled"
    job_id: str


class DownloadRequest(BaseModel):
    """Payload of the synchronous download routes.

    Attributes:
        url: URL of a page, work or series.
        type: ``pdf`` or ``epub``.
    """

    url: Optional[str] = None
    type: Optional[str] = None

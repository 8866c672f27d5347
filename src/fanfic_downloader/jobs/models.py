"""Job data model.

A :class:`Job` is owned exclusively by the
:class:`~fanfic_downloader.jobs.store.JobStore`; everything outside the
store sees read-only :class:`~fanfic_downloader.core.schemas.jobs.JobView`
projections.

State machine::

    PENDING ──► PROCESSING ──► COMPLETED
       │             │
       └─────────────┴───────► FAILED

``FAILED`` is reached from ``PENDING`` only through cancellation.
``COMPLETED`` and ``FAILED`` are terminal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from fanfic_downloader.core.exceptions import JobValidationError


class JobStatus(str, Enum):
    """Lifecycle state of a job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobKind(str, Enum):
    """What a job fetches.

    Attributes:
        SINGLE_PAGE: The one page the URL points at.
        WHOLE_WORK: Every page of the work the URL belongs to.
        SERIES: Every work of the series the URL belongs to.
    """

    SINGLE_PAGE = "single-page"
    WHOLE_WORK = "multi-page-whole-work"
    SERIES = "series"

    @classmethod
    def parse(cls, value: str) -> JobKind:
        """Parse a requested kind; the extension's legacy names are accepted."""
        legacy = _LEGACY_KINDS.get(value)
        if legacy is not None:
            return cls(legacy)
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(k.value for k in cls)
            raise JobValidationError(f"Invalid kind '{value}'. Must be one of: {allowed}") from None


_LEGACY_KINDS: dict[str, str] = {
    "single-chapter": "single-page",
    "multi-chapter": "multi-page-whole-work",
}


class OutputFormat(str, Enum):
    """Rendered document format."""

    PDF = "pdf"
    EPUB = "epub"

    @property
    def content_type(self) -> str:
        return _CONTENT_TYPES[self]

    @property
    def extension(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str) -> OutputFormat:
        """Parse a requested format; ``e-book`` and ``ebook`` mean EPUB."""
        normalized = value.strip().lower()
        if normalized in ("e-book", "ebook"):
            return cls.EPUB
        try:
            return cls(normalized)
        except ValueError:
            raise JobValidationError(
                f"Invalid format '{value}'. Must be one of: pdf, epub"
            ) from None


_CONTENT_TYPES: dict[OutputFormat, str] = {
    OutputFormat.PDF: "application/pdf",
    OutputFormat.EPUB: "application/epub+zip",
}


@dataclass(frozen=True)
class JobSource:
    """Origin URL plus the site adapter that recognised it."""

    url: str
    site: str


@dataclass(frozen=True)
class StoredArtifact:
    """Reference to a completed job's output file on scratch storage."""

    path: Path
    content_type: str
    size_bytes: int


@dataclass
class DownloadResult:
    """Rendered output of one job execution, before it is stored."""

    data: bytes
    content_type: str
    extension: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class Job:
    """The unit of work.

    Invariants: ``result`` is set iff ``status`` is COMPLETED, ``error`` is
    set iff ``status`` is FAILED, and ``progress`` never decreases.
    Timestamps are epoch seconds from the store's clock.
    """

    id: str
    kind: JobKind
    source: JobSource
    output_format: OutputFormat
    created_at: float
    status: JobStatus = JobStatus.PENDING
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    progress: int = 0
    error: Optional[str] = None
    result: Optional[StoredArtifact] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def advance_progress(self, value: int) -> None:
        """Raise progress to *value* (clamped to 0-100); never lowers it."""
        self.progress = max(self.progress, min(max(value, 0), 100))

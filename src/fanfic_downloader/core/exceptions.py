"""Application-wide exception hierarchy for the fanfic downloader.

All custom exceptions subclass ``FanficDownloaderError``, enabling
consistent error handling and structured logging across the application.

Hierarchy::

    FanficDownloaderError
    ├── UnsupportedSiteError         (url)
    ├── JobValidationError
    ├── FetchError
    │   ├── ContentNotFoundError     (selector, url)
    │   └── UnsupportedContentError
    ├── PartialContentError          (failed_pages, total_pages)
    ├── RenderError
    ├── StorageError
    ├── JobNotFoundError             (job_id)
    │   └── ArtifactMissingError
    └── JobNotReadyError             (job_id, status)
"""

from __future__ import annotations

import asyncio

from playwright.async_api import TimeoutError as PlaywrightTimeoutError


class FanficDownloaderError(Exception):
    """Base class for all fanfic downloader exceptions.

    All application-specific exceptions inherit from this class so that
    callers can catch the entire hierarchy with a single ``except`` clause
    when needed.
    """


# ---------------------------------------------------------------------------
# Submission validation
# ---------------------------------------------------------------------------


class UnsupportedSiteError(FanficDownloaderError):
    """Raised when no site adapter recognises a URL.

    Args:
        url: The URL that matched no adapter.
    """

    def __init__(self, url: str) -> None:
        super().__init__(f"Unsupported site: {url}")
        self.url = url


class JobValidationError(FanficDownloaderError):
    """Raised when a job request carries an invalid kind, format or source.

    Validation errors are rejected synchronously and never become a Job.
    """


# ---------------------------------------------------------------------------
# Fetch errors
# ---------------------------------------------------------------------------


class FetchError(FanficDownloaderError):
    """Raised when the origin cannot serve the requested content.

    Escaping a job's execution, this fails the whole job.
    """


class ContentNotFoundError(FetchError):
    """Raised when a page's content marker never appeared within the wait.

    The chaptered origin answers bursts with challenge pages that resolve
    within seconds, so this error is treated as transient and retried.

    Args:
        selector: CSS selector of the content marker.
        url: Page URL being fetched.
    """

    def __init__(self, selector: str, url: str | None = None) -> None:
        msg = f"Content marker '{selector}' not found"
        if url:
            msg += f" on {url}"
        super().__init__(msg)
        self.selector = selector
        self.url = url


class UnsupportedContentError(FetchError):
    """Raised when a request needs a capability the origin does not offer."""


class PartialContentError(FanficDownloaderError):
    """Raised when too many pages of a multi-page job failed permanently.

    Args:
        failed_pages: 1-based indices of the pages that were lost.
        total_pages: Total number of pages in the work.
    """

    def __init__(self, failed_pages: list[int], total_pages: int) -> None:
        super().__init__(
            f"{len(failed_pages)} of {total_pages} pages could not be fetched"
        )
        self.failed_pages = failed_pages
        self.total_pages = total_pages


# ---------------------------------------------------------------------------
# Output errors
# ---------------------------------------------------------------------------


class RenderError(FanficDownloaderError):
    """Raised when merged content cannot be rendered to PDF or EPUB bytes."""


class StorageError(FanficDownloaderError):
    """Raised when an artifact cannot be written to the scratch directory."""


# ---------------------------------------------------------------------------
# Job store lookups
# ---------------------------------------------------------------------------


class JobNotFoundError(FanficDownloaderError):
    """Raised when a job id is unknown to the store.

    Args:
        job_id: The id that was looked up.
    """

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job '{job_id}' not found")
        self.job_id = job_id


class ArtifactMissingError(JobNotFoundError):
    """Raised when a completed job's artifact file is gone from disk.

    The job record is removed along with the error, so a retry sees 404.
    """

    def __init__(self, job_id: str) -> None:
        super().__init__(job_id)
        self.args = (f"Result file for job '{job_id}' not found",)


class JobNotReadyError(FanficDownloaderError):
    """Raised when a result is requested for a job that is not Completed.

    Args:
        job_id: The id that was looked up.
        status: The job's current status value.
        reason: The job's failure reason, when it failed.
    """

    def __init__(self, job_id: str, status: str, reason: str | None = None) -> None:
        super().__init__(f"Job '{job_id}' is not completed (status: {status})")
        self.job_id = job_id
        self.status = status
        self.reason = reason


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def is_transient(exc: BaseException) -> bool:
    """Return ``True`` for failures that typically clear up on a retry.

    Navigation and selector timeouts (Playwright or asyncio) and missing
    content markers are transient.  Everything else is classified as
    non-transient, although the retry policy still retries it.
    """
    return isinstance(
        exc,
        (ContentNotFoundError, PlaywrightTimeoutError, asyncio.TimeoutError, TimeoutError),
    )

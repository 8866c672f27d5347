"""Synchronous validation of job requests.

Invalid requests are rejected here, before they can become a Job.
"""

from __future__ import annotations

from typing import Optional

from fanfic_downloader.core.exceptions import JobValidationError, UnsupportedSiteError
from fanfic_downloader.jobs.models import JobKind, JobSource, OutputFormat
from fanfic_downloader.sites.registry import detect_site, get_adapter_class, list_sites


def validate_request(
    url: Optional[str],
    kind: Optional[str],
    fmt: Optional[str],
) -> tuple[JobKind, JobSource, OutputFormat]:
    """Check a request and resolve its origin.

    Args:
        url: Source URL.
        kind: Requested job kind.
        fmt: Requested output format.

    Returns:
        ``(kind, source, format)`` ready for submission.

    Raises:
        JobValidationError: If a field is missing or invalid, or a series
            is requested from an origin without series support.
        UnsupportedSiteError: If no site adapter recognises *url*.
    """
    if not url or not url.strip():
        raise JobValidationError("URL is required")
    url = url.strip()
    site = detect_site(url)
    if site is None:
        raise UnsupportedSiteError(url)

    if not kind:
        raise JobValidationError("Kind is required")
    job_kind = JobKind.parse(kind)
    if not fmt:
        raise JobValidationError("Format is required")
    output_format = OutputFormat.parse(fmt)

    if job_kind is JobKind.SERIES and not get_adapter_class(site).supports_series:
        raise JobValidationError(f"Series downloads are not supported for {site}")

    return job_kind, JobSource(url=url, site=site), output_format


def supported_hosts() -> list[str]:
    """Every host recognised by a registered adapter."""
    return [host for site in list_sites() for host in site["hosts"]]

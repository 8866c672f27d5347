"""Test doubles and data factories.

Available helpers
-----------------
FakeSession            : scripted browser session serving a page table
FakeSessionFactory     : session factory tracking open and closed sessions
ffn_story              : page table of a chaptered story
ao3_work / ao3_series  : page tables of single works and series
JobRequestFactory      : ``POST /api/jobs`` body dict
DownloadRequestFactory : ``POST /api/download/...`` body dict
"""

from __future__ import annotations

from tests.factories.browser import FakeSession, FakeSessionFactory
from tests.factories.sites import (
    DownloadRequestFactory,
    JobRequestFactory,
    ao3_series,
    ao3_work,
    ffn_story,
)

__all__ = [
    "DownloadRequestFactory",
    "FakeSession",
    "FakeSessionFactory",
    "JobRequestFactory",
    "ao3_series",
    "ao3_work",
    "ffn_story",
]

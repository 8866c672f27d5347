"""FastAPI dependency injection providers.

The job store and runner are built once per application in the lifespan
handler of ``api/main.py`` and kept on ``app.state``; route handlers
resolve them through these dependencies so that tests can substitute
fakes on the state object.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from fanfic_downloader.jobs.runner import JobRunner
from fanfic_downloader.jobs.store import JobStore


def get_job_store(request: Request) -> JobStore:
    return request.app.state.job_store


def get_job_runner(request: Request) -> JobRunner:
    return request.app.state.job_runner


JobStoreDep = Annotated[JobStore, Depends(get_job_store)]
JobRunnerDep = Annotated[JobRunner, Depends(get_job_runner)]

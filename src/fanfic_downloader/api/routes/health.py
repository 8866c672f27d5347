"""Health check and service index routes.

``GET /api/health``
    Liveness check.  Performs no I/O and never fails.

``GET /``
    Service index listing the public endpoints and supported sites.
"""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter

from fanfic_downloader.config.settings import get_settings
from fanfic_downloader.sites.registry import list_sites

router = APIRouter(tags=["system"])

_ENDPOINTS: dict[str, str] = {
    "createJob": "POST /api/jobs",
    "jobStatus": "GET /api/jobs/{id}",
    "jobResult": "GET /api/jobs/{id}/result",
    "cancelJob": "DELETE /api/jobs/{id}",
    "queueStats": "GET /api/jobs/stats",
    "singleChapter": "POST /api/download/single-chapter",
    "multiChapter": "POST /api/download/multi-chapter",
    "series": "POST /api/download/series",
    "health": "GET /api/health",
}


@router.get("/api/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}


@router.get("/")
async def index() -> dict:  # type: ignore[type-arg]
    return {
        "name": get_settings().app_name,
        "endpoints": _ENDPOINTS,
        "sites": list_sites(),
    }

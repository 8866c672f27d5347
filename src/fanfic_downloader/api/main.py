"""FastAPI application factory and entry point.

Creates the application instance, registers middleware, mounts the route
routers and wires the job store and runner onto ``app.state`` in the
lifespan handler.

Usage::

    # Development server (from project root)
    uvicorn fanfic_downloader.api.main:app --reload

    # Production
    uvicorn fanfic_downloader.api.main:app --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Callable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from fanfic_downloader.config.settings import get_settings
from fanfic_downloader.core.logging_config import configure_logging, request_id_var
from fanfic_downloader.jobs.artifacts import ArtifactStorage
from fanfic_downloader.jobs.runner import JobRunner
from fanfic_downloader.jobs.store import JobStore
from fanfic_downloader.rendering.renderer import DocumentRenderer
from fanfic_downloader.scraper.browser import session_factory

# ---------------------------------------------------------------------------
# Logging configuration: applied once at module import time so that log
# records emitted during app construction are captured correctly.
# The log level is re-applied inside create_app() after settings are loaded.
# ---------------------------------------------------------------------------

configure_logging("INFO")

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Build the job runner and store, start the store, stop it on shutdown."""
    settings = get_settings()
    sessions = session_factory(
        headless=settings.headless,
        executable_path=settings.browser_executable_path,
    )
    runner = JobRunner(sessions, DocumentRenderer(sessions), settings=settings)
    store = JobStore(
        runner.run,
        ArtifactStorage(settings.job_files_dir),
        capacity=settings.max_concurrent_jobs,
        timeout_seconds=settings.job_timeout_seconds,
        retention_seconds=settings.job_retention_seconds,
        cleanup_interval_seconds=settings.cleanup_interval_seconds,
    )
    application.state.job_runner = runner
    application.state.job_store = store

    await store.start()
    logger.info(
        "application_startup",
        app_name=settings.app_name,
        debug=settings.debug,
        log_level=settings.log_level,
        max_concurrent_jobs=settings.max_concurrent_jobs,
    )
    try:
        yield
    finally:
        await store.stop()
        logger.info("application_shutdown")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application.

    Separated from the module-level ``app`` singleton so that tests can
    call ``create_app()`` with a patched settings environment before the
    singleton is created.

    Returns:
        A fully configured ``FastAPI`` instance.
    """
    settings = get_settings()

    # Re-apply logging configuration with the correct level from settings.
    configure_logging(settings.log_level)

    application = FastAPI(
        title=settings.app_name,
        description=(
            "Downloads fan-fiction pages, whole works and series from "
            "supported archives and renders them as PDF or EPUB."
        ),
        version="0.1.0",
        debug=settings.debug,
        # Disable automatic redirect for paths with trailing slashes.
        redirect_slashes=False,
        lifespan=lifespan,
    )

    # ---- Middleware --------------------------------------------------------

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Request-ID"],
    )

    # ---- Request logging middleware ----------------------------------------

    @application.middleware("http")
    async def request_logging_middleware(
        request: Request, call_next: Callable
    ) -> Response:
        """Log every incoming request and its response status + duration.

        Attaches a unique ``request_id`` to the structlog context so that all
        log lines emitted during a request can be correlated.
        """
        request_id = str(uuid.uuid4())
        request_id_var.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("unhandled_exception", exc_info=exc)
            raise
        finally:
            elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = getattr(response, "status_code", 500)
            log_fn = logger.warning if status_code >= 400 else logger.info
            log_fn(
                "request_complete",
                status_code=status_code,
                elapsed_ms=elapsed_ms,
            )

        response.headers["X-Request-ID"] = request_id
        return response

    # ---- Routers -----------------------------------------------------------

    from fanfic_downloader.api.routes import (  # noqa: PLC0415
        downloads,
        health as health_routes,
        jobs,
    )

    application.include_router(jobs.router, prefix="/api/jobs")
    application.include_router(downloads.router, prefix="/api/download")
    # /api/health and the service index at /
    application.include_router(health_routes.router)

    return application


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

app = create_app()
"""The FastAPI application instance.

This is the ASGI callable passed to Uvicorn.
"""

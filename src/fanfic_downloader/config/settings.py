"""Application settings loaded from environment variables.

Uses Pydantic Settings v2 for validated, type-safe configuration.
Every tunable read from the environment is declared here; never call
``os.getenv`` directly elsewhere in the codebase.

Every field has a default: an absent variable falls back to it rather
than failing at startup.

Usage::

    from fanfic_downloader.config.settings import get_settings

    settings = get_settings()
    capacity = settings.max_concurrent_jobs
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application-wide configuration backed by environment variables and an optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Job scheduling
    # ------------------------------------------------------------------

    max_concurrent_jobs: int = Field(default=3, ge=1)
    """Maximum number of jobs in the Processing state at the same time."""

    job_timeout_ms: int = Field(default=45 * 60 * 1000, ge=1)
    """Hard deadline for a single job.  A job still running after this many
    milliseconds is forced to Failed with reason ``"timed out"``."""

    job_retention_ms: int = Field(default=10 * 60 * 1000, ge=0)
    """How long a finished job (and its artifact) is kept after completion."""

    cleanup_interval_ms: int = Field(default=5 * 60 * 1000, ge=1)
    """Interval between two runs of the retention sweep."""

    job_files_dir: Path = Path("/tmp/fanfic-downloads")
    """Scratch directory holding one artifact file per completed job."""

    # ------------------------------------------------------------------
    # Parallel fetch engine
    # ------------------------------------------------------------------

    pages_per_worker: int = Field(default=15, ge=1)
    """Target number of pages assigned to one worker browser."""

    max_workers: int = Field(default=2, ge=1)
    """Upper bound on worker browsers per job.  Kept low: the chaptered
    origin starts serving challenge pages above two concurrent sessions."""

    max_failed_pages_percent: int = Field(default=100, ge=0, le=100)
    """Fail a multi-page job when more than this percentage of its pages
    could not be fetched after every retry.  ``100`` keeps partial-content
    jobs successful."""

    series_max_works: int = Field(default=50, ge=1)
    """Maximum number of works followed through "next in series" links."""

    # ------------------------------------------------------------------
    # Browser
    # ------------------------------------------------------------------

    headless: bool = True
    """Launch Chromium headless.  Set ``HEADLESS=false`` to watch a fetch."""

    browser_executable_path: Optional[str] = None
    """Explicit Chromium binary (Docker / CI).  ``None`` uses the browser
    installed by ``playwright install chromium``."""

    # ------------------------------------------------------------------
    # Application behaviour
    # ------------------------------------------------------------------

    app_name: str = "Fanfic Downloader"
    """Human-readable application name shown in the OpenAPI docs."""

    debug: bool = False
    """Enable FastAPI debug mode.  Never True in production."""

    log_level: str = "INFO"
    """Logging verbosity.  One of: DEBUG, INFO, WARNING, ERROR, CRITICAL."""

    allowed_origins: list[str] = ["http://localhost:3000"]
    """Origins permitted by the CORS middleware (website and extension)."""

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def job_timeout_seconds(self) -> float:
        return self.job_timeout_ms / 1000

    @property
    def job_retention_seconds(self) -> float:
        return self.job_retention_ms / 1000

    @property
    def cleanup_interval_seconds(self) -> float:
        return self.cleanup_interval_ms / 1000


@lru_cache
def get_settings() -> Settings:
    """Return the cached application settings singleton.

    Uses ``functools.lru_cache`` so that Pydantic Settings reads the environment
    and .env file exactly once per process lifetime.  In tests, call
    ``get_settings.cache_clear()`` after patching environment variables.

    Returns:
        Settings: The validated settings object.
    """
    return Settings()

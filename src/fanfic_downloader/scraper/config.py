"""Constants and tuning parameters for the fetch layer.

The delays below are calibrated against the chaptered origin's bot
detection.  Shorter values trigger challenge pages within a few chapters.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Browser
# ---------------------------------------------------------------------------

#: User-agent string sent by every browser session.
USER_AGENT: str = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

#: Chromium launch flags.
BROWSER_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--no-zygote",
    "--disable-blink-features=AutomationControlled",
    "--window-size=1920,1080",
)

VIEWPORT: dict[str, int] = {"width": 1920, "height": 1080}

#: Navigation timeout (milliseconds).
NAVIGATION_TIMEOUT_MS: int = 60_000

#: Content-marker wait in the parallel path (milliseconds).
PARALLEL_CONTENT_TIMEOUT_MS: int = 15_000

#: Content-marker wait in the single-session path (milliseconds).
CONTENT_TIMEOUT_MS: int = 30_000

# ---------------------------------------------------------------------------
# Retry / pacing (seconds)
# ---------------------------------------------------------------------------

RETRY_ATTEMPTS: int = 3
RETRY_BASE_DELAY: float = 8.0
RETRY_GROWTH_FACTOR: float = 1.5
RETRY_JITTER: float = 1.0

#: Pause between two pages of one worker, plus up to ``INTER_PAGE_JITTER``.
INTER_PAGE_DELAY: float = 4.0
INTER_PAGE_JITTER: float = 2.0

#: Offset between the start of two consecutive workers.
WORKER_STAGGER_DELAY: float = 3.0

#: Cool-down before the final single-session retry pass.
RETRY_PASS_COOLDOWN: float = 10.0

#: Pause before each page of the final retry pass.
RETRY_PASS_PAGE_DELAY: float = 16.0

# ---------------------------------------------------------------------------
# Output markup
# ---------------------------------------------------------------------------

#: Inserted between pages; both renderers honour it as a hard page break.
PAGE_BREAK: str = '<div style="page-break-before: always;"></div>'

DEFAULT_TITLE: str = "Fanfic Story"
DEFAULT_SERIES_TITLE: str = "Fanfic Series"
DEFAULT_AUTHOR: str = "Unknown"

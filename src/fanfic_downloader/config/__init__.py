"""Configuration package for the fanfic downloader.

Re-exports the settings entry points so that callers can write::

    from fanfic_downloader.config import get_settings
"""

from __future__ import annotations

from fanfic_downloader.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]

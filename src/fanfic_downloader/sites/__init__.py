"""Site adapters.

Importing this package registers every bundled adapter.
"""

from fanfic_downloader.sites import ao3, ffn  # noqa: F401
from fanfic_downloader.sites.base import SiteAdapter
from fanfic_downloader.sites.registry import (
    detect_site,
    get_adapter,
    get_adapter_class,
    list_sites,
    register,
)

__all__ = [
    "SiteAdapter",
    "detect_site",
    "get_adapter",
    "get_adapter_class",
    "list_sites",
    "register",
]

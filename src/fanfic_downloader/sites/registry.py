"""Site adapter registry.

Adapters register themselves on import using the ``@register`` decorator.
The registry is a module-level singleton mapping ``site_name`` strings to
``SiteAdapter`` subclasses; lookups by URL try each adapter's
:meth:`~fanfic_downloader.sites.base.SiteAdapter.detect` in registration
order.

Example, looking up an adapter::

    from fanfic_downloader.sites.registry import detect_site, get_adapter

    detect_site("https://www.fanfiction.net/s/1234/1/")   # "ffn"
    adapter = get_adapter("https://archiveofourown.org/works/42")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fanfic_downloader.core.exceptions import UnsupportedSiteError

if TYPE_CHECKING:
    from fanfic_downloader.sites.base import SiteAdapter

logger = logging.getLogger(__name__)

# Registry singleton: site_name -> SiteAdapter subclass
_REGISTRY: dict[str, type[SiteAdapter]] = {}


def register(cls: type[SiteAdapter]) -> type[SiteAdapter]:
    """Decorator that registers a ``SiteAdapter`` subclass in the global registry.

    If an adapter with the same ``site_name`` has already been registered,
    the new registration overwrites the old one and a warning is emitted.

    Args:
        cls: ``SiteAdapter`` subclass to register.

    Returns:
        The same class (decorator pass-through).
    """
    site_name = cls.site_name
    if site_name in _REGISTRY:
        logger.warning(
            "Site '%s' is already registered (was %s). Overwriting with %s.",
            site_name,
            _REGISTRY[site_name].__qualname__,
            cls.__qualname__,
        )
    _REGISTRY[site_name] = cls
    logger.debug("Registered site adapter: site=%s class=%s", site_name, cls.__qualname__)
    return cls


def detect_site(url: str) -> str | None:
    """Return the ``site_name`` of the adapter recognising *url*, or ``None``."""
    for site_name, cls in _REGISTRY.items():
        if cls.detect(url):
            return site_name
    return None


def get_adapter_class(site_name: str) -> type[SiteAdapter]:
    """Retrieve a registered adapter class by site name.

    Raises:
        KeyError: If no adapter with the given name is registered.
    """
    try:
        return _REGISTRY[site_name]
    except KeyError:
        registered = sorted(_REGISTRY.keys())
        raise KeyError(
            f"No adapter registered for site '{site_name}'. Registered sites: {registered}."
        ) from None


def get_adapter(url: str) -> SiteAdapter:
    """Instantiate the adapter recognising *url*.

    Raises:
        UnsupportedSiteError: If no registered adapter recognises the URL.
    """
    site_name = detect_site(url)
    if site_name is None:
        raise UnsupportedSiteError(url)
    return _REGISTRY[site_name]()


def list_sites() -> list[dict]:  # type: ignore[type-arg]
    """Return capability metadata for all registered adapters, sorted by name."""
    return [
        {
            "site_name": cls.site_name,
            "hosts": list(cls.hosts),
            "supports_parallel": cls.supports_parallel,
            "supports_series": cls.supports_series,
        }
        for cls in sorted(_REGISTRY.values(), key=lambda c: c.site_name)
    ]

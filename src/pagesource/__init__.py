"""pagesource: fetch-and-cache gateway for web page sources.

Pages are fetched once, stored on disk under a content id derived from the
URL, and served from the cache until their TTL runs out. Run the HTTP server
with the ``pagesource`` console script.
"""

from __future__ import annotations

import warnings
from importlib import metadata

_FALLBACK_VERSION = "0.0.0+unknown"


def _installed_version(distribution: str = "pagesource") -> str:
    """Version of the installed distribution, or a placeholder from a bare checkout."""
    try:
        return metadata.version(distribution)
    except metadata.PackageNotFoundError:
        warnings.warn(
            f"{distribution} is not installed; reporting version {_FALLBACK_VERSION!r}.",
            RuntimeWarning,
            stacklevel=2,
        )
        return _FALLBACK_VERSION


__version__ = _installed_version()

from pagesource.cache import CacheIndex, content_id  # noqa: E402
from pagesource.errors import ErrorCode, PageSourceError  # noqa: E402

__all__ = ["CacheIndex", "ErrorCode", "PageSourceError", "__version__", "content_id"]

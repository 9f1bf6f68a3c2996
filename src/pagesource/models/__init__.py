from __future__ import annotations

from pagesource.models.cache import CacheEntry
from pagesource.models.pages import PageSourceInput, PageSourceOutput

__all__ = [
    # cache
    "CacheEntry",
    # pages
    "PageSourceInput",
    "PageSourceOutput",
]

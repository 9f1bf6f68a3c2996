"""Application state container.

AppState is created once at server startup (inside the Starlette lifespan)
and passed to the request coordinator and the cache sweeper.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import asyncio

    import httpx

    from pagesource.cache import CacheIndex
    from pagesource.config import Settings
    from pagesource.limiter import ConcurrencyLimiter
    from pagesource.protocols import BlobStoreProtocol, FetcherProtocol


@dataclass
class AppState:
    """Holds all shared runtime state."""

    settings: Settings
    index: CacheIndex
    limiter: ConcurrencyLimiter
    blob_store: BlobStoreProtocol
    fetcher: FetcherProtocol
    http_client: httpx.AsyncClient | None = None

    # In-flight fetch jobs; drained at shutdown.
    pending_jobs: set[asyncio.Task] = field(default_factory=set)

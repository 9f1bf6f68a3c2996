"""Protocol interfaces for swappable components.

The coordinator and AppState reference these protocols, not the concrete
implementations, so tests can substitute in-memory doubles for the blob
store and the network fetcher.
"""

from __future__ import annotations

from typing import Protocol


class BlobStoreProtocol(Protocol):
    """Interface for the payload store keyed by content id."""

    async def exists(self, content_id: str) -> bool: ...

    async def read(self, content_id: str) -> bytes: ...

    async def write(self, content_id: str, data: bytes) -> None: ...

    async def delete(self, content_id: str) -> None: ...


class FetcherProtocol(Protocol):
    """Interface for the retrying page fetcher."""

    async def fetch(self, url: str, retry_limit: int = 0) -> bytes: ...

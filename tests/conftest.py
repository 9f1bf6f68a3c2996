"""Shared test fixtures for the pagesource test suite."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from pagesource.cache import CacheIndex
from pagesource.config import Settings
from pagesource.limiter import ConcurrencyLimiter
from pagesource.state import AppState

if TYPE_CHECKING:
    from pathlib import Path

    from pagesource.protocols import BlobStoreProtocol, FetcherProtocol


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class InMemoryBlobStore:
    """Dict-backed BlobStoreProtocol implementation with failure switches."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self.fail_writes = False
        self.fail_deletes = False

    async def exists(self, content_id: str) -> bool:
        return content_id in self.blobs

    async def read(self, content_id: str) -> bytes:
        try:
            return self.blobs[content_id]
        except KeyError:
            raise FileNotFoundError(content_id) from None

    async def write(self, content_id: str, data: bytes) -> None:
        if self.fail_writes:
            raise OSError("No space left on device")
        self.blobs[content_id] = data

    async def delete(self, content_id: str) -> None:
        if self.fail_deletes:
            raise OSError("Permission denied")
        self.blobs.pop(content_id, None)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 1, tzinfo=UTC))


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings isolated to a tmp files dir."""
    return Settings(
        storage={"files_dir": str(tmp_path / "files")},
        cache={"ttl_seconds": 60, "sweep_interval_seconds": 10},
    )


@pytest.fixture()
def memory_blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture()
def make_state(settings: Settings, clock: FakeClock):
    """Factory for an AppState around the given fetcher and blob store."""

    def _make(
        fetcher: FetcherProtocol,
        blob_store: BlobStoreProtocol,
        *,
        capacity: int | None = None,
    ) -> AppState:
        return AppState(
            settings=settings,
            index=CacheIndex(timedelta(seconds=settings.cache.ttl_seconds), clock=clock),
            limiter=ConcurrencyLimiter(capacity or settings.fetcher.max_concurrent_fetches),
            blob_store=blob_store,
            fetcher=fetcher,
        )

    return _make

"""In-memory cache index with an insertion-ordered expiry queue.

The index maps content id → CacheEntry. The expiry queue records
``(content_id, fetched_at)`` references in the order entries were published,
so a sweep only has to look at the head of the queue instead of scanning the
whole index.

Re-fetching a URL replaces its entry in place and appends a new reference.
The older reference stays in the queue; when it reaches the head its
``fetched_at`` no longer matches the live entry and it is dropped without
evicting anything. References to ids that were already deleted are dropped
the same way.

All access goes through one ``asyncio.Lock``. Publishing an entry and its
queue reference happens in a single critical section.

Writers that pair an index change with a blob change (publishing a fetched
page, deleting an evicted page's blob) also hold the per-id ``key_lock`` so
the two steps are never interleaved for the same id.
"""

from __future__ import annotations

import asyncio
import hashlib
from collections import deque
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from pagesource.models.cache import CacheEntry

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    Clock = Callable[[], datetime]


def content_id(url: str) -> str:
    """Return the stable content id for a URL (hex SHA-256)."""
    return hashlib.sha256(url.encode()).hexdigest()


def utc_now() -> datetime:
    return datetime.now(UTC)


class CacheIndex:
    """Lock-guarded content id → CacheEntry mapping plus its expiry queue."""

    def __init__(self, ttl: timedelta, *, clock: Clock = utc_now) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._expiry: deque[tuple[str, datetime]] = deque()
        self._lock = asyncio.Lock()
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._key_waiters: dict[str, int] = {}

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @property
    def queue_depth(self) -> int:
        return len(self._expiry)

    def __len__(self) -> int:
        return len(self._entries)

    def now(self) -> datetime:
        return self._clock()

    def is_fresh(self, entry: CacheEntry, now: datetime | None = None) -> bool:
        """True while ``now - fetched_at`` is strictly below the TTL."""
        if now is None:
            now = self._clock()
        return now - entry.fetched_at < self._ttl

    @asynccontextmanager
    async def key_lock(self, content_id: str) -> AsyncIterator[None]:
        """Serialise blob-and-index updates for a single content id.

        Locks are created on demand and dropped once nobody holds or waits on
        them.
        """
        lock = self._key_locks.setdefault(content_id, asyncio.Lock())
        self._key_waiters[content_id] = self._key_waiters.get(content_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._key_waiters[content_id] -= 1
            if not self._key_waiters[content_id]:
                del self._key_waiters[content_id]
                del self._key_locks[content_id]

    @property
    def key_lock_count(self) -> int:
        return len(self._key_locks)

    # ------------------------------------------------------------------
    # Mapping operations
    # ------------------------------------------------------------------

    async def get(self, content_id: str) -> CacheEntry | None:
        async with self._lock:
            return self._entries.get(content_id)

    async def put(self, entry: CacheEntry) -> None:
        """Insert or replace an entry. Last writer wins."""
        async with self._lock:
            self._put_locked(entry)

    async def record(self, content_id: str, source_url: str) -> CacheEntry:
        """Publish a freshly fetched page, stamped with the current time.

        The timestamp is taken under the lock so queue order matches
        ``fetched_at`` order.
        """
        async with self._lock:
            entry = CacheEntry(id=content_id, source_url=source_url, fetched_at=self._clock())
            self._put_locked(entry)
            return entry

    async def delete(
        self, content_id: str, *, if_fetched_at: datetime | None = None
    ) -> CacheEntry | None:
        """Remove an entry. Idempotent: deleting an absent id returns ``None``.

        With ``if_fetched_at`` the entry is only removed if it has not been
        replaced since the caller read it.
        """
        async with self._lock:
            entry = self._entries.get(content_id)
            if entry is None:
                return None
            if if_fetched_at is not None and entry.fetched_at != if_fetched_at:
                return None
            del self._entries[content_id]
            return entry

    async def entries(self) -> list[CacheEntry]:
        """Snapshot of all entries, safe to iterate while the index changes."""
        async with self._lock:
            return list(self._entries.values())

    def _put_locked(self, entry: CacheEntry) -> None:
        self._entries[entry.id] = entry
        self._expiry.append((entry.id, entry.fetched_at))

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    async def evict_expired(self) -> list[CacheEntry]:
        """Pop expired entries from the head of the expiry queue.

        Stops at the first reference to a live, fresh entry. Returns the
        entries that were removed from the index, oldest first.
        """
        evicted: list[CacheEntry] = []
        async with self._lock:
            now = self._clock()
            while self._expiry:
                queued_id, queued_at = self._expiry[0]
                entry = self._entries.get(queued_id)
                if entry is None or entry.fetched_at != queued_at:
                    self._expiry.popleft()
                    continue
                if self.is_fresh(entry, now):
                    break
                self._expiry.popleft()
                del self._entries[queued_id]
                evicted.append(entry)
        return evicted

"""Background cache sweeper.

A single sweeper task is created by the server lifespan and runs for the
lifetime of the process.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pagesource.config import Settings
    from pagesource.state import AppState

log = structlog.get_logger()


def sweep_interval_seconds(settings: Settings) -> float:
    """Tick no less often than the TTL, so entries never outlive it by more than one TTL."""
    return min(settings.cache.sweep_interval_seconds, settings.cache.ttl_seconds)


async def sweep_once(state: AppState) -> int:
    """Evict expired entries from the index and return how many were removed.

    Blob deletion (when enabled) is best-effort: failures are logged and the
    sweep moves on.
    """
    evicted = await state.index.evict_expired()

    for entry in evicted:
        log.info(
            "cache_entry_evicted",
            id=entry.id,
            url=entry.source_url,
            fetched_at=entry.fetched_at.isoformat(),
        )
        if not state.settings.cache.delete_blobs_on_evict:
            continue
        await _delete_evicted_blob(state, entry.id)

    if evicted:
        log.info(
            "cache_sweep_complete",
            evicted=len(evicted),
            remaining=len(state.index),
        )
    return len(evicted)


async def _delete_evicted_blob(state: AppState, page_id: str) -> None:
    # Held across the check and the delete so a concurrent publish for the
    # same id cannot land its blob in between.
    async with state.index.key_lock(page_id):
        if await state.index.get(page_id) is not None:
            log.debug("blob_delete_skipped", id=page_id, reason="republished")
            return
        try:
            await state.blob_store.delete(page_id)
        except OSError:
            log.warning("blob_delete_failed", id=page_id, exc_info=True)


async def run_cache_sweeper(state: AppState) -> None:
    """Sweep the cache on a fixed interval until cancelled."""
    interval = sweep_interval_seconds(state.settings)
    log.info("cache_sweeper_started", interval_seconds=interval)

    while True:
        await asyncio.sleep(interval)
        try:
            await sweep_once(state)
        except Exception:
            log.warning("cache_sweep_error", exc_info=True)

"""Request coordinator for page source requests.

Receives AppState, orchestrates cache lookup / limited network fetch / blob
write / index publish, and returns a structured dict. No Starlette imports;
server.py handles the HTTP wiring.

Concurrent misses for the same URL are not merged: each one runs its own
fetch job, bounded only by the shared ConcurrencyLimiter.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from pagesource.cache import content_id
from pagesource.errors import ErrorCode, PageSourceError
from pagesource.models.pages import PageSourceInput, PageSourceOutput

if TYPE_CHECKING:
    from collections.abc import Callable

    from pagesource.models.cache import CacheEntry
    from pagesource.state import AppState


async def handle(url: str, retry_limit: int, state: AppState) -> dict:
    """Serve one page source request, from cache when possible."""
    try:
        validated = PageSourceInput(url=url, retry_limit=retry_limit)
    except ValueError as exc:
        raise PageSourceError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Provide a valid http/https URL (max 2048 chars) and an integer retryLimit.",
            recoverable=False,
        ) from exc

    page_id = content_id(validated.url)
    log = structlog.get_logger().bind(url=validated.url, id=page_id)
    log.info("request_received", retry_limit=validated.retry_limit)

    cached_entry = await _lookup(page_id, state, log)
    if cached_entry is not None:
        log.info("cache_hit")
        return _build_output(cached_entry, cached=True)

    log.info("cache_miss_fetching")
    entry = await _submit_fetch_job(validated, page_id, state)
    return _build_output(entry, cached=False)


async def _lookup(
    page_id: str, state: AppState, log: structlog.types.FilteringBoundLogger
) -> CacheEntry | None:
    """Return a servable entry, or ``None`` when the request must fetch.

    An entry is servable only if it is fresh and its blob is present.
    Expired entries and entries with a missing blob are removed here.
    """
    entry = await state.index.get(page_id)
    if entry is None:
        return None

    if not state.index.is_fresh(entry):
        await state.index.delete(page_id, if_fetched_at=entry.fetched_at)
        log.info("cache_entry_expired", fetched_at=entry.fetched_at.isoformat())
        return None

    if not await state.blob_store.exists(page_id):
        log.warning("cache_inconsistency", reason="blob_missing")
        await state.index.delete(page_id, if_fetched_at=entry.fetched_at)
        return None

    return entry


async def _submit_fetch_job(
    validated: PageSourceInput, page_id: str, state: AppState
) -> CacheEntry:
    """Run the fetch as its own task and wait for it.

    The task is tracked in ``state.pending_jobs`` and shielded, so it still
    completes (and populates the cache) if the waiting caller goes away.
    """
    job = asyncio.create_task(_fetch_and_store(validated, page_id, state))
    state.pending_jobs.add(job)
    job.add_done_callback(_job_finished(state))
    return await asyncio.shield(job)


def _job_finished(state: AppState) -> Callable[[asyncio.Task], None]:
    def callback(job: asyncio.Task) -> None:
        state.pending_jobs.discard(job)
        if not job.cancelled():
            # Marks the exception retrieved when the caller was cancelled.
            job.exception()

    return callback


async def _fetch_and_store(
    validated: PageSourceInput, page_id: str, state: AppState
) -> CacheEntry:
    log = structlog.get_logger().bind(url=validated.url, id=page_id)

    async with state.limiter.slot():
        log.debug("fetch_slot_acquired", in_flight=state.limiter.in_flight)
        body = await state.fetcher.fetch(validated.url, validated.retry_limit)

    # Blob first, then the index entry: an entry never points at a missing blob.
    # The key lock keeps the sweeper from deleting the blob in between.
    async with state.index.key_lock(page_id):
        try:
            await state.blob_store.write(page_id, body)
        except OSError as exc:
            log.error("blob_write_failed", exc_info=True)
            raise PageSourceError(
                code=ErrorCode.PERSIST_FAILURE,
                message=f"Error storing the page fetched from {validated.url}",
                suggestion="Check that the storage directory is writable and has free space.",
                recoverable=True,
            ) from exc

        entry = await state.index.record(page_id, validated.url)
    log.info("cache_entry_stored", content_length=len(body), cache_size=len(state.index))
    return entry


def _build_output(entry: CacheEntry, *, cached: bool) -> dict:
    output = PageSourceOutput(
        id=entry.id,
        source_url=entry.source_url,
        cached=cached,
        fetched_at=entry.fetched_at,
    )
    return output.model_dump(mode="json", by_alias=True)

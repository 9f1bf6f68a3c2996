"""HTTP page fetcher with bounded retry and fixed backoff.

All network I/O for fetching pages goes through a single Fetcher instance
shared across requests. The Fetcher receives an httpx.AsyncClient via
constructor injection and the lifespan owns the client lifecycle.

The Fetcher does not limit concurrency itself; callers wrap it in the
ConcurrencyLimiter.
"""

from __future__ import annotations

import asyncio

import httpx
import structlog

from pagesource.config import MAX_RETRY_LIMIT, FetcherSettings
from pagesource.errors import ErrorCode, PageSourceError

log = structlog.get_logger()


def build_http_client(settings: FetcherSettings | None = None) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    settings = settings or FetcherSettings()
    return httpx.AsyncClient(
        follow_redirects=True,
        max_redirects=10,
        timeout=httpx.Timeout(settings.request_timeout_seconds),
        headers={"User-Agent": settings.user_agent},
        limits=httpx.Limits(
            max_connections=settings.max_concurrent_fetches,
            max_keepalive_connections=max(1, settings.max_concurrent_fetches // 2),
        ),
    )


def clamp_retry_limit(
    requested: int,
    default: int = MAX_RETRY_LIMIT,
    maximum: int = MAX_RETRY_LIMIT,
) -> int:
    """Resolve a caller-supplied retry limit.

    Values ``<= 0`` or above ``maximum`` fall back to ``default``; anything
    else is used as given.
    """
    if requested <= 0 or requested > maximum:
        return default
    return requested


class Fetcher:
    """Retrying page fetcher implementing FetcherProtocol."""

    def __init__(self, client: httpx.AsyncClient, settings: FetcherSettings | None = None) -> None:
        self._client = client
        self._settings = settings or FetcherSettings()

    async def fetch(self, url: str, retry_limit: int = 0) -> bytes:
        """Fetch ``url`` and return the response body.

        Makes up to ``clamp_retry_limit(retry_limit)`` attempts, sleeping a
        fixed ``backoff_seconds`` between them. An attempt fails on a network
        error or a non-2xx status. Raises PageSourceError with FETCH_EXHAUSTED
        once every attempt has failed, or READ_FAILURE if a successful
        response body cannot be read to completion.
        """
        attempts = clamp_retry_limit(
            retry_limit,
            default=self._settings.default_retry_limit,
            maximum=self._settings.max_retry_limit,
        )

        for attempt in range(1, attempts + 1):
            try:
                body = await self._attempt(url)
            except httpx.HTTPError as exc:
                log.warning(
                    "fetch_attempt_failed",
                    url=url,
                    attempt=attempt,
                    max_attempts=attempts,
                    error=str(exc) or type(exc).__name__,
                )
            else:
                log.info("fetch_complete", url=url, attempt=attempt, content_length=len(body))
                return body

            if attempt < attempts:
                await asyncio.sleep(self._settings.backoff_seconds)

        raise PageSourceError(
            code=ErrorCode.FETCH_EXHAUSTED,
            message=f"Error fetching {url} after {attempts} attempts",
            suggestion="The page may be temporarily unavailable. Retry later.",
            recoverable=True,
            details={"url": url, "attempts": attempts},
        )

    async def _attempt(self, url: str) -> bytes:
        async with self._client.stream("GET", url) as response:
            response.raise_for_status()
            try:
                return await response.aread()
            except httpx.HTTPError as exc:
                raise PageSourceError(
                    code=ErrorCode.READ_FAILURE,
                    message=f"Error reading the response body from {url}: {exc}",
                    suggestion="The connection was interrupted mid-transfer. Retry the request.",
                    recoverable=True,
                    details={"url": url},
                ) from exc

"""HTTP server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState in the Starlette lifespan and start the cache sweeper
- Route requests to the coordinator and serialise errors
- Run uvicorn
"""

from __future__ import annotations

import asyncio
import logging
import sys
from contextlib import asynccontextmanager, suppress
from datetime import timedelta
from typing import TYPE_CHECKING

import structlog
import uvicorn
from starlette.applications import Starlette
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from pagesource import __version__, coordinator
from pagesource.blobstore import FileBlobStore, is_content_id
from pagesource.cache import CacheIndex
from pagesource.config import Settings
from pagesource.errors import ErrorCode, PageSourceError
from pagesource.fetcher import Fetcher, build_http_client
from pagesource.limiter import ConcurrencyLimiter
from pagesource.schedulers import run_cache_sweeper
from pagesource.state import AppState

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable
    from contextlib import AbstractAsyncContextManager

    from starlette.requests import Request

log = structlog.get_logger()

ERROR_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.FETCH_EXHAUSTED: 502,
    ErrorCode.READ_FAILURE: 502,
    ErrorCode.PERSIST_FAILURE: 500,
    ErrorCode.PAGE_NOT_FOUND: 404,
}


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def build_state(settings: Settings) -> AppState:
    """Wire the shared components. The caller owns ``state.http_client``."""
    blob_store = FileBlobStore(settings.storage.files_dir)
    blob_store.ensure_dir()
    http_client = build_http_client(settings.fetcher)

    return AppState(
        settings=settings,
        index=CacheIndex(timedelta(seconds=settings.cache.ttl_seconds)),
        limiter=ConcurrencyLimiter(settings.fetcher.max_concurrent_fetches),
        blob_store=blob_store,
        fetcher=Fetcher(http_client, settings.fetcher),
        http_client=http_client,
    )


def _make_lifespan(
    settings: Settings,
) -> Callable[[Starlette], AbstractAsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncGenerator[None, None]:
        """Create and tear down all shared resources for the server's lifetime."""
        _setup_logging(settings)
        log.info("server_starting", version=__version__)

        state = build_state(settings)
        app.state.pagesource = state

        # Exactly one sweeper per process, never one per request.
        sweeper_task = asyncio.create_task(run_cache_sweeper(state))

        log.info(
            "server_started",
            version=__version__,
            host=settings.server.host,
            port=settings.server.port,
            files_dir=settings.storage.files_dir,
            ttl_seconds=settings.cache.ttl_seconds,
            max_concurrent_fetches=settings.fetcher.max_concurrent_fetches,
        )

        try:
            yield
        finally:
            sweeper_task.cancel()
            with suppress(asyncio.CancelledError):
                await sweeper_task
            if state.pending_jobs:
                log.info("waiting_for_fetch_jobs", count=len(state.pending_jobs))
                await asyncio.gather(*state.pending_jobs, return_exceptions=True)
            if state.http_client is not None:
                await state.http_client.aclose()
            log.info("server_stopping")

    return lifespan


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def _error_response(error: PageSourceError) -> JSONResponse:
    return JSONResponse(error.to_dict(), status_code=ERROR_STATUS[error.code])


async def post_page_source(request: Request) -> Response:
    """Fetch (or serve from cache) the page named in the JSON body."""
    state: AppState = request.app.state.pagesource

    try:
        payload = await request.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        return _error_response(
            PageSourceError(
                code=ErrorCode.INVALID_INPUT,
                message="Invalid request: body must be a JSON object.",
                suggestion='Send {"url": "https://...", "retryLimit": 3}.',
            )
        )

    try:
        result = await coordinator.handle(
            payload.get("url", ""), payload.get("retryLimit", 0), state
        )
    except PageSourceError as exc:
        log.warning(
            "request_error",
            route="post_page_source",
            code=exc.code,
            message=exc.message,
            recoverable=exc.recoverable,
        )
        return _error_response(exc)
    except Exception:
        log.error("request_unexpected_error", route="post_page_source", exc_info=True)
        raise

    return JSONResponse(result)


async def get_page_source(request: Request) -> Response:
    """Return the stored payload for a content id."""
    state: AppState = request.app.state.pagesource
    page_id: str = request.path_params["page_id"]

    not_found = PageSourceError(
        code=ErrorCode.PAGE_NOT_FOUND,
        message=f"No stored page with id {page_id!r}",
        suggestion="POST the URL to /pagesource first and use the returned id.",
    )
    if not is_content_id(page_id):
        return _error_response(not_found)

    try:
        body = await state.blob_store.read(page_id)
    except FileNotFoundError:
        return _error_response(not_found)

    return Response(body, media_type="text/html")


# ---------------------------------------------------------------------------
# App factory and entrypoint
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None) -> Starlette:
    settings = settings or Settings()
    return Starlette(
        routes=[
            Route("/pagesource", post_page_source, methods=["POST"]),
            Route("/pagesource/{page_id}", get_page_source, methods=["GET"]),
        ],
        lifespan=_make_lifespan(settings),
    )


def main() -> None:
    settings = Settings()
    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,  # Disable uvicorn's default logging; structlog handles it
    )


if __name__ == "__main__":
    main()

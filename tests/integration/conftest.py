"""Integration test fixtures.

Provides a fully wired AppState with a real FileBlobStore in a tmp
directory, a real Fetcher around an httpx client (mocked with respx in the
tests), and a fake clock. Shared fixtures come from tests/conftest.py.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from pagesource.blobstore import FileBlobStore
from pagesource.fetcher import Fetcher

if TYPE_CHECKING:
    from pagesource.config import Settings
    from pagesource.state import AppState


@pytest.fixture()
def blob_store(settings: Settings) -> FileBlobStore:
    store = FileBlobStore(settings.storage.files_dir)
    store.ensure_dir()
    return store


@pytest.fixture()
async def app_state(make_state, settings: Settings, blob_store: FileBlobStore) -> AppState:
    """AppState wired with the real fetcher and file blob store."""
    async with httpx.AsyncClient() as client:
        state = make_state(Fetcher(client, settings.fetcher), blob_store)
        state.http_client = client
        yield state

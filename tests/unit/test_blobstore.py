"""Unit tests for pagesource.blobstore."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from pagesource.blobstore import FileBlobStore, is_content_id
from pagesource.cache import content_id

if TYPE_CHECKING:
    from pathlib import Path

CID = content_id("http://example.test/a")


@pytest.fixture()
def store(tmp_path: Path) -> FileBlobStore:
    s = FileBlobStore(tmp_path / "files")
    s.ensure_dir()
    return s


class TestIsContentId:
    def test_accepts_sha256_hex(self) -> None:
        assert is_content_id(CID)

    @pytest.mark.parametrize("value", ["", "abc", "../etc/passwd", CID.upper(), CID + "0"])
    def test_rejects_other_values(self, value: str) -> None:
        assert not is_content_id(value)


class TestFileBlobStore:
    async def test_write_then_read(self, store: FileBlobStore) -> None:
        await store.write(CID, b"<html>hello</html>")
        assert await store.exists(CID)
        assert await store.read(CID) == b"<html>hello</html>"
        assert store.path_for(CID).name == f"{CID}.html"

    async def test_missing_blob(self, store: FileBlobStore) -> None:
        assert not await store.exists(CID)
        with pytest.raises(FileNotFoundError):
            await store.read(CID)

    async def test_overwrite_replaces_content(self, store: FileBlobStore) -> None:
        await store.write(CID, b"v1")
        await store.write(CID, b"v2")
        assert await store.read(CID) == b"v2"

    async def test_delete_is_idempotent(self, store: FileBlobStore) -> None:
        await store.write(CID, b"data")
        await store.delete(CID)
        await store.delete(CID)
        assert not await store.exists(CID)

    async def test_no_temp_files_left(self, store: FileBlobStore) -> None:
        await store.write(CID, b"data")
        assert [p.name for p in store.root.iterdir()] == [f"{CID}.html"]

    async def test_failed_write_cleans_up(self, store: FileBlobStore) -> None:
        with (
            patch("pagesource.blobstore.os.replace", side_effect=OSError("disk full")),
            pytest.raises(OSError, match="disk full"),
        ):
            await store.write(CID, b"data")

        assert list(store.root.iterdir()) == []
        assert not await store.exists(CID)

    async def test_rejects_invalid_id(self, store: FileBlobStore) -> None:
        with pytest.raises(ValueError, match="Invalid content id"):
            await store.write("../escape", b"data")

    def test_ensure_dir_creates_nested_root(self, tmp_path: Path) -> None:
        store = FileBlobStore(tmp_path / "a" / "b")
        store.ensure_dir()
        assert store.root.is_dir()

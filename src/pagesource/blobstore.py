"""File-system blob store.

Each payload is stored as ``<root>/<content_id>.html``. Writes go to a
temporary file in the same directory and are then renamed over the target,
so a reader never sees a partially written blob. File I/O runs in a worker
thread to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import os
import re
import uuid
from pathlib import Path

import structlog

log = structlog.get_logger()

_CONTENT_ID = re.compile(r"^[0-9a-f]{64}$")


def is_content_id(value: str) -> bool:
    return bool(_CONTENT_ID.match(value))


class FileBlobStore:
    """Blob store implementing BlobStoreProtocol on a local directory."""

    def __init__(self, root: Path | str, suffix: str = ".html") -> None:
        self._root = Path(root).expanduser()
        self._suffix = suffix

    @property
    def root(self) -> Path:
        return self._root

    def ensure_dir(self) -> None:
        """Create the storage directory. Called once at startup."""
        self._root.mkdir(parents=True, exist_ok=True)

    def path_for(self, content_id: str) -> Path:
        if not is_content_id(content_id):
            raise ValueError(f"Invalid content id: {content_id!r}")
        return self._root / f"{content_id}{self._suffix}"

    async def exists(self, content_id: str) -> bool:
        path = self.path_for(content_id)
        return await asyncio.to_thread(path.is_file)

    async def read(self, content_id: str) -> bytes:
        """Return the stored payload. Raises ``FileNotFoundError`` if absent."""
        path = self.path_for(content_id)
        return await asyncio.to_thread(path.read_bytes)

    async def write(self, content_id: str, data: bytes) -> None:
        """Store a payload atomically. Raises ``OSError`` on failure."""
        path = self.path_for(content_id)
        await asyncio.to_thread(self._write_atomic, path, data)
        log.debug("blob_written", id=content_id, size=len(data))

    async def delete(self, content_id: str) -> None:
        """Remove a payload. Deleting an absent blob is a no-op."""
        path = self.path_for(content_id)
        await asyncio.to_thread(path.unlink, missing_ok=True)

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> None:
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            tmp_path.write_bytes(data)
            os.replace(tmp_path, path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise

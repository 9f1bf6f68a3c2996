from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class CacheEntry(BaseModel):
    """Index metadata for one fetched page. The payload lives in the blob store."""

    model_config = ConfigDict(frozen=True)

    id: str  # SHA-256 of source_url, also the blob key
    source_url: str
    fetched_at: datetime

from __future__ import annotations

from datetime import datetime

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator


class PageSourceInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    # Unclamped; the fetcher resolves out-of-range values to the default.
    retry_limit: int = Field(default=0, alias="retryLimit")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("url must not be empty")
        if len(v) > 2048:
            raise ValueError("url must not exceed 2048 characters")
        if not v.startswith(("http://", "https://")):
            raise ValueError("url must use http or https scheme")
        try:
            v.encode()
            host = httpx.URL(v).host
        except UnicodeEncodeError:
            raise ValueError("url must be valid UTF-8 text") from None
        except httpx.InvalidURL as exc:
            raise ValueError(f"url is malformed: {exc}") from None
        if not host:
            raise ValueError("url must include a host")
        return v

    @field_validator("retry_limit", mode="before")
    @classmethod
    def default_missing_retry_limit(cls, v: object) -> object:
        return 0 if v is None else v


class PageSourceOutput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    source_url: str = Field(alias="sourceUrl")
    cached: bool
    fetched_at: datetime = Field(alias="fetchedAt")

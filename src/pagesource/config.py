"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (PAGESOURCE__SERVER__PORT=8080)
  2. pagesource.yaml        (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional: all fields have sensible defaults. Values are
read once at startup; nothing is reconfigured at runtime.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("pagesource")
_DEFAULT_FILES_DIR = str(Path(_DEFAULT_DATA_DIR) / "files")

# Hard ceiling for a caller-supplied retry limit.
MAX_RETRY_LIMIT = 10


def _find_config_file() -> str | None:
    """Return the path of the first pagesource.yaml found, or None."""
    candidates = [
        Path("pagesource.yaml"),
        Path(platformdirs.user_config_dir("pagesource")) / "pagesource.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 5000


class CacheSettings(BaseModel):
    ttl_seconds: float = Field(default=24 * 3600, gt=0)
    sweep_interval_seconds: float = Field(default=3600, gt=0)
    delete_blobs_on_evict: bool = False


class FetcherSettings(BaseModel):
    max_concurrent_fetches: int = Field(default=10, ge=1)
    default_retry_limit: int = Field(default=MAX_RETRY_LIMIT, ge=1, le=MAX_RETRY_LIMIT)
    max_retry_limit: int = Field(default=MAX_RETRY_LIMIT, ge=1, le=MAX_RETRY_LIMIT)
    backoff_seconds: float = Field(default=1.0, ge=0)
    request_timeout_seconds: float = 30.0
    user_agent: str = "pagesource/1.0"


class StorageSettings(BaseModel):
    files_dir: str = _DEFAULT_FILES_DIR


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: PAGESOURCE__CACHE__TTL_SECONDS=60
        env_prefix="PAGESOURCE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    cache: CacheSettings = CacheSettings()
    fetcher: FetcherSettings = FetcherSettings()
    storage: StorageSettings = StorageSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )

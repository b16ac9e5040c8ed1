"""Nested pydantic-settings configuration for the resource cache.

Storage settings keep the ``MCP_RESOURCE_*`` environment names the
crawl server has always used::

    export MCP_RESOURCE_STORAGE=filesystem
    export MCP_RESOURCE_FILESYSTEM_ROOT=/var/cache/pulse-crawl
    export MCP_RESOURCE_TTL=3600
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class StorageConfig(BaseSettings):
    """Resource storage configuration.

    Env vars use ``MCP_RESOURCE_`` prefix. Units follow the env contract:
    ``ttl`` in seconds, ``max_size`` in MiB, ``cleanup_interval`` in ms.
    """

    model_config = {"env_prefix": "MCP_RESOURCE_"}

    storage: Literal["memory", "filesystem"] = "memory"
    ttl: int = Field(default=86_400, ge=0)
    max_size: int = Field(default=100, ge=0)
    max_items: int = Field(default=1000, ge=0)
    cleanup_interval: int = Field(default=60_000, gt=0)
    filesystem_root: Optional[Path] = None

    @field_validator("storage", mode="before")
    @classmethod
    def _normalize_storage(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def default_ttl_ms(self) -> int:
        """Default TTL in milliseconds (0 = never expires)."""
        return self.ttl * 1000

    @property
    def max_size_bytes(self) -> int:
        return self.max_size * 1024 * 1024


class ObservabilityConfig(BaseSettings):
    """Logging configuration.

    Env vars use ``CRAWL_CACHE_OBSERVABILITY_`` prefix. ``json_logs`` left
    unset picks JSON lines when stderr is not a terminal.
    """

    model_config = {"env_prefix": "CRAWL_CACHE_OBSERVABILITY_"}

    log_level: str = "INFO"
    json_logs: Optional[bool] = None


class AppSettings(BaseSettings):
    """Top-level settings aggregating all sub-configs.

    Each sub-config reads its own env vars when constructed.
    """

    storage: StorageConfig = Field(default_factory=StorageConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

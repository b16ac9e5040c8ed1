"""Checks run once at startup, before any storage backend is built."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from crawl_cache.core.config import AppSettings

log = logging.getLogger(__name__)


def validate_settings(settings: AppSettings) -> None:
    """Raise ValueError for settings the cache cannot run with; warn about risky ones."""
    _check_filesystem_root(settings)
    _check_container_storage(settings)
    _check_limits(settings)


def _check_filesystem_root(settings: AppSettings) -> None:
    """Reject a filesystem root that exists but cannot hold tier directories."""
    storage = settings.storage
    if storage.storage != "filesystem" or storage.filesystem_root is None:
        return
    root = storage.filesystem_root
    if root.exists() and not root.is_dir():
        raise ValueError(
            f"MCP_RESOURCE_FILESYSTEM_ROOT={root} exists but is not a directory. "
            "Point it at a directory or unset it to use the temp directory."
        )


def _check_container_storage(settings: AppSettings) -> None:
    """Warn about the temp-directory default in containerized environments."""
    is_container = bool(
        os.environ.get("ECS_CONTAINER_METADATA_URI")
        or os.environ.get("KUBERNETES_SERVICE_HOST")
    )
    storage = settings.storage
    if is_container and storage.storage == "filesystem" and storage.filesystem_root is None:
        log.warning(
            "MCP_RESOURCE_STORAGE=filesystem in a container without MCP_RESOURCE_FILESYSTEM_ROOT. "
            "Cached resources live in the temp directory and are lost on container restart."
        )


def _check_limits(settings: AppSettings) -> None:
    """Warn when limits make the cache evict everything it stores."""
    storage = settings.storage
    if storage.max_items == 0 or storage.max_size == 0:
        log.warning(
            "MCP_RESOURCE_MAX_ITEMS=%d / MCP_RESOURCE_MAX_SIZE=%d: every write will be evicted immediately.",
            storage.max_items,
            storage.max_size,
        )

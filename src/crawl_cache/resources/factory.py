"""Backend selection and the per-process storage handle."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from crawl_cache.core.config import StorageConfig
from crawl_cache.resources.backends.filesystem import FileSystemResourceStorage
from crawl_cache.resources.backends.memory import MemoryResourceStorage
from crawl_cache.resources.protocols import IResourceStorage

log = logging.getLogger(__name__)


async def create_resource_storage(config: Optional[StorageConfig] = None) -> IResourceStorage:
    """Create and initialize the backend named by ``config.storage``.

    Args:
        config: Storage settings. If None, read from ``MCP_RESOURCE_*`` env vars.
    """
    config = config or StorageConfig()

    storage: IResourceStorage
    if config.storage == "memory":
        storage = MemoryResourceStorage(config)
    elif config.storage == "filesystem":
        storage = FileSystemResourceStorage(config=config)
    else:
        raise ValueError(
            f"Unsupported storage type: {config.storage!r}. Supported types: memory, filesystem"
        )

    await storage.init()
    log.info(
        "Resource storage ready: backend=%s max_items=%d max_size=%dMiB ttl=%ds",
        config.storage,
        config.max_items,
        config.max_size,
        config.ttl,
    )
    return storage


class ResourceStorageProvider:
    """Owns the single storage backend of a process.

    Build one at startup and hand it to whatever needs the cache (tool
    handlers, resource listing) so they all share one logical cache::

        provider = ResourceStorageProvider(settings.storage)
        storage = await provider.get()
    """

    def __init__(self, config: Optional[StorageConfig] = None) -> None:
        self._config = config
        self._instance: Optional[IResourceStorage] = None
        self._lock = asyncio.Lock()

    async def get(self) -> IResourceStorage:
        """Return the backend, constructing it on first use."""
        if self._instance is not None:
            return self._instance
        async with self._lock:
            if self._instance is None:
                self._instance = await create_resource_storage(self._config)
        return self._instance

    def reset(self) -> None:
        """Stop background cleanup and drop the backend. For test isolation only."""
        if self._instance is not None:
            self._instance.stop_cleanup()
        self._instance = None

"""crawl-cache: TTL/LRU resource cache for fetched web content.

Typical wiring::

    from crawl_cache import AppSettings, ResourceStorageProvider, setup_logging

    settings = AppSettings()
    setup_logging(settings.observability)
    provider = ResourceStorageProvider(settings.storage)
    storage = await provider.get()
    uri = await storage.write("https://example.com/", "<html>...</html>")
"""

from __future__ import annotations

from crawl_cache.core.config import AppSettings, ObservabilityConfig, StorageConfig
from crawl_cache.core.logging_config import setup_logging
from crawl_cache.exceptions import (
    CrawlCacheError,
    DocumentFormatError,
    InvalidHandleError,
    ResourceNotFoundError,
)
from crawl_cache.resources import (
    CacheStats,
    FileSystemResourceStorage,
    IResourceStorage,
    MemoryResourceStorage,
    ResourceMetadata,
    ResourceStorageProvider,
    StoredResource,
    WriteMultiParams,
    WriteMultiResult,
    create_resource_storage,
)

__all__ = [
    "AppSettings",
    "StorageConfig",
    "ObservabilityConfig",
    "setup_logging",
    "CrawlCacheError",
    "ResourceNotFoundError",
    "InvalidHandleError",
    "DocumentFormatError",
    "IResourceStorage",
    "MemoryResourceStorage",
    "FileSystemResourceStorage",
    "ResourceStorageProvider",
    "create_resource_storage",
    "ResourceMetadata",
    "StoredResource",
    "WriteMultiParams",
    "WriteMultiResult",
    "CacheStats",
]

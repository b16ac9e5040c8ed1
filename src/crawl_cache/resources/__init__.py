"""Resource cache: models, backends, eviction and the storage provider."""

from __future__ import annotations

from crawl_cache.resources.backends import FileSystemResourceStorage, MemoryResourceStorage
from crawl_cache.resources.factory import ResourceStorageProvider, create_resource_storage
from crawl_cache.resources.models import (
    RESOURCE_TYPES,
    CacheStats,
    ResourceMetadata,
    ResourceSummary,
    ResourceType,
    StoredResource,
    WriteMultiParams,
    WriteMultiResult,
)
from crawl_cache.resources.protocols import IResourceStorage

__all__ = [
    "RESOURCE_TYPES",
    "CacheStats",
    "FileSystemResourceStorage",
    "IResourceStorage",
    "MemoryResourceStorage",
    "ResourceMetadata",
    "ResourceStorageProvider",
    "ResourceSummary",
    "ResourceType",
    "StoredResource",
    "WriteMultiParams",
    "WriteMultiResult",
    "create_resource_storage",
]

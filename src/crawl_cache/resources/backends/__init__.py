"""Storage backend implementations."""

from __future__ import annotations

from crawl_cache.resources.backends.filesystem import FileSystemResourceStorage
from crawl_cache.resources.backends.memory import MemoryResourceStorage

__all__ = ["FileSystemResourceStorage", "MemoryResourceStorage"]

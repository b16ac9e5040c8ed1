"""Structural interface shared by the memory and filesystem backends."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional, Protocol, runtime_checkable

from crawl_cache.resources.models import CacheStats, StoredResource, WriteMultiParams, WriteMultiResult


@runtime_checkable
class IResourceStorage(Protocol):
    """Protocol for resource storage backends (memory, filesystem)."""

    async def init(self) -> None:
        """Prepare the backend. Safe to call more than once."""
        ...

    async def write(self, url: str, content: str, metadata: Optional[Mapping[str, Any]] = None) -> str:
        """Store one tier and return its URI.

        ``timestamp`` and ``lastAccessTime`` are stamped with the current
        time; ``ttl`` falls back to the backend default. Capacity limits
        are enforced afterwards.
        """
        ...

    async def write_multi(self, params: WriteMultiParams) -> WriteMultiResult:
        """Store raw plus optional cleaned/extracted tiers for one URL.

        Tiers are written in order and never rolled back.
        """
        ...

    async def read(self, uri: str) -> StoredResource:
        """Return a resource and refresh its last access time.

        Raises ResourceNotFoundError if unknown or expired.
        """
        ...

    async def exists(self, uri: str) -> bool:
        """Same expiry semantics as ``read`` without touching access time."""
        ...

    async def delete(self, uri: str) -> None:
        """Remove a resource regardless of TTL. Raises ResourceNotFoundError if absent."""
        ...

    async def list(self) -> list[StoredResource]:
        """All live resources across tiers; expired ones are removed on the way."""
        ...

    async def find_by_url(self, url: str) -> list[StoredResource]:
        """Resources for ``url``, newest first."""
        ...

    async def find_by_url_and_extract(self, url: str, extract_prompt: Optional[str] = None) -> list[StoredResource]:
        """Resources for ``url`` matching an extraction prompt, newest first.

        With a prompt: only extracted-tier entries with exactly that prompt.
        Without one: only entries that carry no extraction prompt at all.
        """
        ...

    async def get_stats(self) -> CacheStats:
        """Point-in-time counts, sizes and limits."""
        ...

    async def cleanup(self) -> None:
        """One-shot sweep: drop expired entries, then enforce limits."""
        ...

    async def evict(self, uri: str) -> None:
        """Force-remove a resource, ignoring TTL."""
        ...

    def start_cleanup(self) -> None:
        """Start the background reclaimer (no-op if running)."""
        ...

    def stop_cleanup(self) -> None:
        """Stop the background reclaimer (no-op if stopped)."""
        ...

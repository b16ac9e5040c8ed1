"""In-memory resource storage with TTL expiry and LRU eviction."""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Mapping
from typing import Any, Callable, Optional

from crawl_cache.core.config import StorageConfig
from crawl_cache.exceptions import ResourceNotFoundError
from crawl_cache.resources.eviction import EvictionCandidate, now_ms, select_lru_victims
from crawl_cache.resources.models import (
    CacheStats,
    ResourceSummary,
    ResourceType,
    StampClock,
    StoredResource,
    WriteMultiParams,
    WriteMultiResult,
    build_metadata,
    generate_memory_uri,
    matches_extraction_prompt,
    newest_first,
)
from crawl_cache.resources.reclaimer import BackgroundReclaimer

log = logging.getLogger(__name__)


@dataclasses.dataclass
class _CacheEntry:
    resource: StoredResource
    size_bytes: int
    expires_at: int  # 0 = never expires


def _entry_size(resource: StoredResource) -> int:
    """Approximate footprint: UTF-8 content plus serialized metadata."""
    metadata = json.dumps(resource.metadata.to_wire(), separators=(",", ":"))
    return len(resource.text.encode("utf-8")) + len(metadata.encode("utf-8"))


class MemoryResourceStorage:
    """Dict-backed storage that lives only as long as the process.

    Keyword options take precedence over ``config`` (which defaults to
    ``StorageConfig()`` read from the environment). ``default_ttl`` and
    ``cleanup_interval`` are milliseconds; ``max_size_bytes`` is bytes.
    """

    def __init__(
        self,
        config: Optional[StorageConfig] = None,
        *,
        default_ttl: Optional[int] = None,
        max_items: Optional[int] = None,
        max_size_bytes: Optional[int] = None,
        cleanup_interval: Optional[int] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        config = config or StorageConfig()
        self._default_ttl = config.default_ttl_ms if default_ttl is None else default_ttl
        self._max_items = config.max_items if max_items is None else max_items
        self._max_size_bytes = config.max_size_bytes if max_size_bytes is None else max_size_bytes
        self._cleanup_interval = config.cleanup_interval if cleanup_interval is None else cleanup_interval
        self._clock = clock or now_ms
        self._stamps = StampClock(self._clock)
        self._cache: dict[str, _CacheEntry] = {}
        self._reclaimer = BackgroundReclaimer(self.cleanup, self._cleanup_interval, name="memory")

    async def init(self) -> None:
        """Nothing to prepare; present for interface parity."""

    # ── Writes ───────────────────────────────────────────────────────

    def _store(
        self,
        url: str,
        content: str,
        overrides: Optional[Mapping[str, Any]],
        *,
        now: int,
        stamp: int,
        resource_type: Optional[ResourceType] = None,
    ) -> str:
        metadata = build_metadata(
            url,
            overrides,
            now_ms=now,
            default_ttl=self._default_ttl,
            resource_type=resource_type,
        )
        uri = generate_memory_uri(url, metadata.resource_type, stamp)
        resource = StoredResource.from_metadata(uri, content, metadata)
        self._cache[uri] = _CacheEntry(
            resource=resource,
            size_bytes=_entry_size(resource),
            expires_at=0 if metadata.ttl == 0 else now + metadata.ttl,
        )
        self._enforce_limits()
        return uri

    async def write(self, url: str, content: str, metadata: Optional[Mapping[str, Any]] = None) -> str:
        now = self._clock()
        return self._store(url, content, metadata, now=now, stamp=self._stamps.next(now))

    async def write_multi(self, params: WriteMultiParams) -> WriteMultiResult:
        params = WriteMultiParams.model_validate(params)
        base = params.base_metadata()
        now = self._clock()
        stamp = self._stamps.next(now)

        result = WriteMultiResult(
            raw=self._store(params.url, params.raw, base, now=now, stamp=stamp, resource_type="raw"),
        )
        if params.cleaned:
            result.cleaned = self._store(
                params.url, params.cleaned, base, now=now, stamp=stamp, resource_type="cleaned"
            )
        if params.extracted:
            result.extracted = self._store(
                params.url,
                params.extracted,
                {**base, "extractionPrompt": params.extraction_prompt},
                now=now,
                stamp=stamp,
                resource_type="extracted",
            )
        return result

    # ── Reads ────────────────────────────────────────────────────────

    def _is_expired(self, entry: _CacheEntry, now: int) -> bool:
        return entry.expires_at != 0 and now >= entry.expires_at

    def _live_entry(self, uri: str) -> Optional[_CacheEntry]:
        """Look up an entry, dropping it if it has expired."""
        entry = self._cache.get(uri)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            del self._cache[uri]
            log.debug("Evicted %s (expired)", uri)
            return None
        return entry

    async def read(self, uri: str) -> StoredResource:
        entry = self._live_entry(uri)
        if entry is None:
            raise ResourceNotFoundError(uri)
        metadata = entry.resource.metadata
        metadata.last_access_time = max(metadata.last_access_time, self._clock())
        return entry.resource.model_copy(deep=True)

    async def exists(self, uri: str) -> bool:
        return self._live_entry(uri) is not None

    async def delete(self, uri: str) -> None:
        if uri not in self._cache:
            raise ResourceNotFoundError(uri)
        del self._cache[uri]

    async def list(self) -> list[StoredResource]:
        self._evict_expired()
        return [entry.resource.model_copy(deep=True) for entry in self._cache.values()]

    async def find_by_url(self, url: str) -> list[StoredResource]:
        matches = [r for r in await self.list() if r.metadata.url == url]
        return newest_first(matches)

    async def find_by_url_and_extract(self, url: str, extract_prompt: Optional[str] = None) -> list[StoredResource]:
        matches = [
            r for r in await self.list() if r.metadata.url == url and matches_extraction_prompt(r, extract_prompt)
        ]
        return newest_first(matches)

    async def get_stats(self) -> CacheStats:
        self._evict_expired()
        summaries = [
            ResourceSummary(
                uri=uri,
                url=entry.resource.metadata.url,
                size_bytes=entry.size_bytes,
                timestamp=entry.resource.metadata.timestamp,
                last_access_time=entry.resource.metadata.last_access_time,
                ttl=entry.resource.metadata.ttl,
                resource_type=entry.resource.metadata.resource_type,
            )
            for uri, entry in self._cache.items()
        ]
        return CacheStats(
            item_count=len(summaries),
            total_size_bytes=sum(s.size_bytes for s in summaries),
            max_items=self._max_items,
            max_size_bytes=self._max_size_bytes,
            default_ttl=self._default_ttl,
            resources=summaries,
        )

    # ── Eviction ─────────────────────────────────────────────────────

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [uri for uri, entry in self._cache.items() if self._is_expired(entry, now)]
        for uri in expired:
            del self._cache[uri]
            log.debug("Evicted %s (expired)", uri)

    def _enforce_limits(self) -> None:
        self._evict_expired()
        candidates = [
            EvictionCandidate(uri, entry.size_bytes, entry.resource.metadata.last_access_time)
            for uri, entry in self._cache.items()
        ]
        for uri in select_lru_victims(candidates, max_items=self._max_items, max_size_bytes=self._max_size_bytes):
            del self._cache[uri]
            log.debug("Evicted %s (capacity)", uri)

    async def cleanup(self) -> None:
        self._enforce_limits()

    async def evict(self, uri: str) -> None:
        self._cache.pop(uri, None)

    def start_cleanup(self) -> None:
        self._reclaimer.start()

    def stop_cleanup(self) -> None:
        self._reclaimer.stop()


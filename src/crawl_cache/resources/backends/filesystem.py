"""Filesystem resource storage: one markdown file per resource and tier.

Layout under the root directory::

    raw/docs_example_com_guide_1705314600123.md
    cleaned/docs_example_com_guide_1705314600123.md
    extracted/docs_example_com_guide_1705314600123.md

Each file is a frontmatter block (see :mod:`crawl_cache.resources.frontmatter`)
followed by the content. File I/O goes through ``aiofiles`` so the event
loop is never blocked on disk.
"""

from __future__ import annotations

import contextlib
import logging
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, Optional

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from crawl_cache.core.config import StorageConfig
from crawl_cache.exceptions import DocumentFormatError, InvalidHandleError, ResourceNotFoundError
from crawl_cache.resources.eviction import EvictionCandidate, is_expired, now_ms, select_lru_victims
from crawl_cache.resources.frontmatter import parse_document, render_document
from crawl_cache.resources.models import (
    RESOURCE_TYPES,
    CacheStats,
    ResourceMetadata,
    ResourceSummary,
    ResourceType,
    StampClock,
    StoredResource,
    WriteMultiParams,
    WriteMultiResult,
    build_metadata,
    generate_filename,
    matches_extraction_prompt,
    newest_first,
)
from crawl_cache.resources.reclaimer import BackgroundReclaimer

log = logging.getLogger(__name__)

URI_SCHEME = "file://"
DOCUMENT_SUFFIX = ".md"


def default_root() -> Path:
    return Path(tempfile.gettempdir()) / "pulse-crawl" / "resources"


class FileSystemResourceStorage:
    """Stores resources as markdown files in per-tier subdirectories.

    The root is resolved from ``root_dir``, then
    ``config.filesystem_root``, then :func:`default_root`. Keyword
    options take precedence over ``config`` exactly as for
    :class:`~crawl_cache.resources.backends.memory.MemoryResourceStorage`.
    Directories are created by ``init()`` or lazily on first write.
    """

    def __init__(
        self,
        root_dir: str | Path | None = None,
        config: Optional[StorageConfig] = None,
        *,
        default_ttl: Optional[int] = None,
        max_items: Optional[int] = None,
        max_size_bytes: Optional[int] = None,
        cleanup_interval: Optional[int] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        config = config or StorageConfig()
        self._root = Path(root_dir or config.filesystem_root or default_root()).expanduser().absolute()
        self._default_ttl = config.default_ttl_ms if default_ttl is None else default_ttl
        self._max_items = config.max_items if max_items is None else max_items
        self._max_size_bytes = config.max_size_bytes if max_size_bytes is None else max_size_bytes
        self._cleanup_interval = config.cleanup_interval if cleanup_interval is None else cleanup_interval
        self._clock = clock or now_ms
        self._stamps = StampClock(self._clock)
        self._initialized = False
        self._reclaimer = BackgroundReclaimer(self.cleanup, self._cleanup_interval, name="filesystem")

    @property
    def root_dir(self) -> Path:
        return self._root

    async def init(self) -> None:
        if self._initialized:
            return
        for tier in RESOURCE_TYPES:
            await aiofiles.os.makedirs(self._tier_dir(tier), exist_ok=True)
        self._initialized = True
        log.debug("Initialized filesystem storage at %s", self._root)

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.init()

    # ── Paths and documents ──────────────────────────────────────────

    def _tier_dir(self, tier: ResourceType) -> Path:
        return self._root / tier

    def _uri_for(self, path: Path) -> str:
        return f"{URI_SCHEME}{path}"

    def _path_for(self, uri: str) -> Path:
        """Map a ``file://`` URI back to a document inside a tier directory."""
        if not uri.startswith(URI_SCHEME):
            raise InvalidHandleError(uri, f"expected {URI_SCHEME} prefix")
        path = Path(uri[len(URI_SCHEME):])
        if path.suffix != DOCUMENT_SUFFIX or path.parent not in {self._tier_dir(t) for t in RESOURCE_TYPES}:
            raise InvalidHandleError(uri, f"not a resource under {self._root}")
        return path

    async def _load(self, path: Path) -> tuple[ResourceMetadata, str]:
        try:
            async with aiofiles.open(path, encoding="utf-8", newline="") as f:
                text = await f.read()
        except UnicodeDecodeError as e:
            raise DocumentFormatError(f"Resource is not UTF-8 text: {e}", path=str(path)) from e
        fields, content = parse_document(text, path=str(path))
        fields.setdefault("ttl", self._default_ttl)
        try:
            metadata = ResourceMetadata.model_validate(fields)
        except ValidationError as e:
            raise DocumentFormatError(f"Invalid resource metadata: {e}", path=str(path)) from e
        return metadata, content

    async def _dump(self, path: Path, content: str, metadata: ResourceMetadata) -> None:
        async with aiofiles.open(path, "w", encoding="utf-8", newline="") as f:
            await f.write(render_document(content, metadata.to_wire()))

    async def _rewrite_existing(self, path: Path, content: str, metadata: ResourceMetadata) -> None:
        """Overwrite a document in place. Never creates a missing file.

        Raises FileNotFoundError if the document was removed meanwhile.
        """
        document = render_document(content, metadata.to_wire())
        async with aiofiles.open(path, "r+", encoding="utf-8", newline="") as f:
            await f.write(document)
            await f.truncate()

    async def _unlink_quietly(self, path: Path) -> None:
        with contextlib.suppress(FileNotFoundError):
            await aiofiles.os.unlink(path)

    def _is_expired(self, metadata: ResourceMetadata, now: int) -> bool:
        return is_expired(metadata.timestamp_ms, metadata.ttl, now)

    # ── Writes ───────────────────────────────────────────────────────

    async def _store(
        self,
        url: str,
        content: str,
        overrides: Optional[Mapping[str, Any]],
        *,
        now: int,
        filename: str,
        resource_type: Optional[ResourceType] = None,
    ) -> str:
        metadata = build_metadata(
            url,
            overrides,
            now_ms=now,
            default_ttl=self._default_ttl,
            resource_type=resource_type,
        )
        path = self._tier_dir(metadata.resource_type) / filename
        await self._dump(path, content, metadata)
        await self._enforce_limits()
        return self._uri_for(path)

    async def write(self, url: str, content: str, metadata: Optional[Mapping[str, Any]] = None) -> str:
        await self._ensure_initialized()
        now = self._clock()
        filename = generate_filename(url, self._stamps.next(now))
        return await self._store(url, content, metadata, now=now, filename=filename)

    async def write_multi(self, params: WriteMultiParams) -> WriteMultiResult:
        await self._ensure_initialized()
        params = WriteMultiParams.model_validate(params)
        base = params.base_metadata()
        now = self._clock()
        filename = generate_filename(params.url, self._stamps.next(now))

        result = WriteMultiResult(
            raw=await self._store(params.url, params.raw, base, now=now, filename=filename, resource_type="raw"),
        )
        if params.cleaned:
            result.cleaned = await self._store(
                params.url, params.cleaned, base, now=now, filename=filename, resource_type="cleaned"
            )
        if params.extracted:
            result.extracted = await self._store(
                params.url,
                params.extracted,
                {**base, "extractionPrompt": params.extraction_prompt},
                now=now,
                filename=filename,
                resource_type="extracted",
            )
        return result

    # ── Reads ────────────────────────────────────────────────────────

    async def read(self, uri: str) -> StoredResource:
        path = self._path_for(uri)
        try:
            metadata, content = await self._load(path)
        except FileNotFoundError:
            raise ResourceNotFoundError(uri) from None

        now = self._clock()
        if self._is_expired(metadata, now):
            await self._unlink_quietly(path)
            log.debug("Evicted %s (expired)", uri)
            raise ResourceNotFoundError(uri)

        metadata.last_access_time = max(metadata.last_access_time, now)
        try:
            await self._rewrite_existing(path, content, metadata)
        except FileNotFoundError:
            log.debug("%s was removed while being read; access time not persisted", uri)
        except OSError as e:
            log.debug("Could not persist access time for %s: %s", uri, e)

        return StoredResource.from_metadata(uri, content, metadata)

    async def exists(self, uri: str) -> bool:
        try:
            path = self._path_for(uri)
            metadata, _ = await self._load(path)
        except (InvalidHandleError, DocumentFormatError, OSError):
            return False

        if self._is_expired(metadata, self._clock()):
            await self._unlink_quietly(path)
            log.debug("Evicted %s (expired)", uri)
            return False
        return True

    async def delete(self, uri: str) -> None:
        path = self._path_for(uri)
        try:
            await aiofiles.os.unlink(path)
        except FileNotFoundError:
            raise ResourceNotFoundError(uri) from None

    async def list(self) -> list[StoredResource]:
        resources: list[StoredResource] = []
        now = self._clock()

        for tier in RESOURCE_TYPES:
            tier_dir = self._tier_dir(tier)
            try:
                names = sorted(await aiofiles.os.listdir(tier_dir))
            except FileNotFoundError:
                continue

            for name in names:
                if not name.endswith(DOCUMENT_SUFFIX):
                    continue
                path = tier_dir / name
                try:
                    metadata, content = await self._load(path)
                except FileNotFoundError:
                    continue
                except DocumentFormatError as e:
                    log.warning("Skipping unreadable resource %s: %s", path, e)
                    continue

                if self._is_expired(metadata, now):
                    await self._unlink_quietly(path)
                    log.debug("Evicted %s (expired)", path)
                    continue

                resources.append(StoredResource.from_metadata(self._uri_for(path), content, metadata))

        return resources

    async def find_by_url(self, url: str) -> list[StoredResource]:
        matches = [r for r in await self.list() if r.metadata.url == url]
        return newest_first(matches)

    async def find_by_url_and_extract(self, url: str, extract_prompt: Optional[str] = None) -> list[StoredResource]:
        matches = [
            r for r in await self.list() if r.metadata.url == url and matches_extraction_prompt(r, extract_prompt)
        ]
        return newest_first(matches)

    async def get_stats(self) -> CacheStats:
        summaries: list[ResourceSummary] = []
        for resource in await self.list():
            try:
                stat = await aiofiles.os.stat(self._path_for(resource.uri))
            except FileNotFoundError:
                continue
            metadata = resource.metadata
            summaries.append(
                ResourceSummary(
                    uri=resource.uri,
                    url=metadata.url,
                    size_bytes=stat.st_size,
                    timestamp=metadata.timestamp,
                    last_access_time=metadata.last_access_time,
                    ttl=metadata.ttl,
                    resource_type=metadata.resource_type,
                )
            )

        return CacheStats(
            item_count=len(summaries),
            total_size_bytes=sum(s.size_bytes for s in summaries),
            max_items=self._max_items,
            max_size_bytes=self._max_size_bytes,
            default_ttl=self._default_ttl,
            resources=summaries,
        )

    # ── Eviction ─────────────────────────────────────────────────────

    async def _enforce_limits(self) -> None:
        stats = await self.get_stats()
        candidates = [EvictionCandidate(r.uri, r.size_bytes, r.last_access_time) for r in stats.resources]
        for uri in select_lru_victims(candidates, max_items=self._max_items, max_size_bytes=self._max_size_bytes):
            await self._unlink_quietly(self._path_for(uri))
            log.debug("Evicted %s (capacity)", uri)

    async def cleanup(self) -> None:
        # get_stats() lists every tier, which drops expired files first
        await self._enforce_limits()

    async def evict(self, uri: str) -> None:
        await self._unlink_quietly(self._path_for(uri))

    def start_cleanup(self) -> None:
        self._reclaimer.start()

    def stop_cleanup(self) -> None:
        self._reclaimer.stop()

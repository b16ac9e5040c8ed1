"""Pydantic data models for cached resources.

Field names are snake_case in Python and camelCase on the wire and on
disk (``lastAccessTime``, ``resourceType``, ``extractionPrompt``...).
Models accept either spelling on input.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Literal, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ResourceType = Literal["raw", "cleaned", "extracted"]

RESOURCE_TYPES: tuple[ResourceType, ...] = ("raw", "cleaned", "extracted")

# Keys stamped by the storage engine; caller overrides never replace them.
_ENGINE_OWNED_KEYS = frozenset({"url", "timestamp", "lastAccessTime", "last_access_time"})

_PROMPT_KEYS = ("extractionPrompt", "extraction_prompt", "extract")


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Resource models ──────────────────────────────────────────────────


class ResourceMetadata(_WireModel):
    """Metadata attached to every stored resource.

    Unknown keys are preserved as extras and round-trip unchanged.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    url: str
    timestamp: str
    last_access_time: int = 0
    ttl: int = 0
    resource_type: ResourceType = "raw"
    extraction_prompt: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    content_type: Optional[str] = None
    source: Optional[str] = None

    @property
    def timestamp_ms(self) -> int:
        """Creation time as epoch milliseconds."""
        return parse_timestamp(self.timestamp)

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys, dropping unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class StoredResource(_WireModel):
    """A cached resource as handed to callers."""

    uri: str
    name: str
    text: str
    mime_type: Optional[str] = "text/plain"
    description: Optional[str] = None
    metadata: ResourceMetadata

    @classmethod
    def from_metadata(cls, uri: str, text: str, metadata: ResourceMetadata) -> StoredResource:
        return cls(
            uri=uri,
            name=metadata.title or f"Scraped: {metadata.url}",
            text=text,
            mime_type=metadata.content_type or "text/plain",
            description=metadata.description,
            metadata=metadata,
        )


class WriteMultiParams(_WireModel):
    """Content for up to three tiers of one retrieval."""

    url: str
    raw: str
    cleaned: Optional[str] = None
    extracted: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def extraction_prompt(self) -> Optional[str]:
        """The prompt the extracted tier was produced with, if any."""
        for key in _PROMPT_KEYS:
            value = self.metadata.get(key)
            if value:
                return str(value)
        return None

    def base_metadata(self) -> dict[str, Any]:
        """Shared overrides for every tier, minus the extraction prompt.

        Only the extracted tier carries the prompt so that prompt-less
        lookups still find the raw and cleaned tiers.
        """
        return {k: v for k, v in self.metadata.items() if k not in _PROMPT_KEYS}


class WriteMultiResult(_WireModel):
    """URIs produced by ``write_multi``."""

    raw: str
    cleaned: Optional[str] = None
    extracted: Optional[str] = None


class ResourceSummary(_WireModel):
    """Per-resource line in ``CacheStats``."""

    uri: str
    url: str
    size_bytes: int
    timestamp: str
    last_access_time: int
    ttl: int
    resource_type: ResourceType


class CacheStats(_WireModel):
    """Point-in-time snapshot of a storage backend."""

    item_count: int
    total_size_bytes: int
    max_items: int
    max_size_bytes: int
    default_ttl: int
    resources: list[ResourceSummary] = Field(default_factory=list)


# ── Construction helpers ─────────────────────────────────────────────


def format_timestamp(epoch_ms: int) -> str:
    """Epoch milliseconds → ISO-8601 UTC string (``2024-01-15T10:30:00.123Z``)."""
    seconds, millis = divmod(epoch_ms, 1000)
    dt = datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(milliseconds=millis)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> int:
    """ISO-8601 string → epoch milliseconds. Naive values are taken as UTC."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return round(dt.timestamp() * 1000)


def build_metadata(
    url: str,
    overrides: Mapping[str, Any] | None,
    *,
    now_ms: int,
    default_ttl: int,
    resource_type: ResourceType | None = None,
) -> ResourceMetadata:
    """Stamp engine-owned fields onto caller-supplied metadata.

    ``timestamp`` and ``lastAccessTime`` are always ``now_ms``; ``ttl``
    falls back to ``default_ttl`` when the override is absent or ``None``.
    """
    fields = {k: v for k, v in (overrides or {}).items() if k not in _ENGINE_OWNED_KEYS}

    ttl = fields.pop("ttl", None)
    tier = fields.pop("resourceType", None) or fields.pop("resource_type", None)
    fields.pop("resource_type", None)

    fields.update(
        url=url,
        timestamp=format_timestamp(now_ms),
        lastAccessTime=now_ms,
        ttl=default_ttl if ttl is None else int(ttl),
        resourceType=resource_type or tier or "raw",
    )
    return ResourceMetadata.model_validate(fields)


def slugify_url(url: str) -> tuple[str, str]:
    """Split a URL into filesystem-safe ``(host, path)`` parts.

    ``https://docs.example.com/guide/intro`` → ``("docs_example_com", "_guide_intro")``
    """
    parts = urlsplit(url)
    if not parts.scheme or not parts.hostname:
        raise ValueError(f"Invalid URL: {url!r}")
    host = parts.hostname.replace(".", "_")
    path = (parts.path or "/").replace("/", "_")
    return host, path


def generate_memory_uri(url: str, resource_type: ResourceType, stamp: int) -> str:
    host, path = slugify_url(url)
    return f"memory://{resource_type}/{host}{path}_{stamp}"


def generate_filename(url: str, stamp: int) -> str:
    host, path = slugify_url(url)
    return f"{host}{path}_{stamp}.md"


def matches_extraction_prompt(resource: StoredResource, extract_prompt: Optional[str]) -> bool:
    """Exact prompt match on extracted entries, or "no prompt at all" when none is given."""
    metadata = resource.metadata
    if extract_prompt is not None:
        return metadata.resource_type == "extracted" and metadata.extraction_prompt == extract_prompt
    return not metadata.extraction_prompt


def newest_first(resources: list[StoredResource]) -> list[StoredResource]:
    return sorted(resources, key=lambda r: r.metadata.timestamp_ms, reverse=True)


class StampClock:
    """Millisecond stamps that are never handed out twice.

    Two writes within the same millisecond get consecutive stamps, so
    URIs built from them stay unique for the life of the backend.
    """

    def __init__(self, clock: Callable[[], int]) -> None:
        self._clock = clock
        self._last = 0

    def next(self, now_ms: int | None = None) -> int:
        now = self._clock() if now_ms is None else now_ms
        stamp = max(now, self._last + 1)
        self._last = stamp
        return stamp

"""Cache lookup and save helpers for the retrieval pipeline.

A retrieval first asks :func:`check_cache` for a usable cached copy and,
after a fresh fetch, hands its tiers to :func:`save_to_storage`.
Neither helper lets a cache problem fail the retrieval itself.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Literal, Optional

from crawl_cache.exceptions import CrawlCacheError, ResourceNotFoundError
from crawl_cache.resources.models import StoredResource, WriteMultiParams, WriteMultiResult
from crawl_cache.resources.protocols import IResourceStorage

log = logging.getLogger(__name__)

ResultHandling = Literal["saveOnly", "saveAndReturn", "returnOnly"]

# Cleaned markdown is the most useful to hand back; raw HTML the least.
_TIER_PREFERENCE = ("cleaned", "extracted", "raw")


@dataclasses.dataclass(frozen=True)
class CacheHit:
    """A cached resource chosen to answer a retrieval."""

    content: str
    uri: str
    name: str
    tier: str
    source: str
    timestamp: str
    mime_type: Optional[str] = None
    description: Optional[str] = None


def _preferred(resources: list[StoredResource]) -> StoredResource:
    for tier in _TIER_PREFERENCE:
        for resource in resources:
            if resource.metadata.resource_type == tier:
                return resource
    return resources[0]


async def check_cache(
    storage: IResourceStorage,
    url: str,
    extract: Optional[str] = None,
    *,
    force_rescrape: bool = False,
    result_handling: ResultHandling = "saveAndReturn",
) -> Optional[CacheHit]:
    """Return the best cached copy of ``url`` or None on a miss.

    The lookup is skipped for ``force_rescrape`` and ``saveOnly`` calls.
    Lookup failures are logged and reported as a miss.
    """
    if force_rescrape:
        log.debug("Cache bypassed: force_rescrape=True url=%s", url)
        return None
    if result_handling == "saveOnly":
        log.debug("Cache bypassed: saveOnly mode url=%s", url)
        return None

    try:
        candidates = await storage.find_by_url_and_extract(url, extract)
        if not candidates:
            log.debug("Cache miss url=%s extract=%s", url, bool(extract))
            return None

        preferred = _preferred(candidates)
        resource = await storage.read(preferred.uri)
    except ResourceNotFoundError:
        # expired between the lookup and the read
        log.debug("Cache miss url=%s (entry expired during lookup)", url)
        return None
    except (CrawlCacheError, OSError) as e:
        log.warning("Cache lookup failed for %s, proceeding with fresh fetch: %s", url, e)
        return None

    tier = resource.metadata.resource_type
    log.info("Cache hit url=%s tier=%s uri=%s size=%d", url, tier, resource.uri, len(resource.text))
    return CacheHit(
        content=resource.text,
        uri=resource.uri,
        name=resource.name,
        tier=tier,
        source=resource.metadata.source or "unknown",
        timestamp=resource.metadata.timestamp,
        mime_type=resource.mime_type,
        description=resource.description,
    )


async def save_to_storage(
    storage: IResourceStorage,
    url: str,
    raw: str,
    *,
    cleaned: Optional[str] = None,
    extracted: Optional[str] = None,
    extract: Optional[str] = None,
    source: str = "unknown",
    **extra: Any,
) -> Optional[WriteMultiResult]:
    """Write the tiers of a fresh retrieval. Returns None if caching failed.

    ``extra`` keys (``startIndex``, ``maxChars``, ``wasTruncated``...) are
    stored as metadata alongside the content.
    """
    metadata: dict[str, Any] = {"source": source, "contentLength": len(raw), **extra}
    if extract:
        metadata["extract"] = extract

    params = WriteMultiParams(url=url, raw=raw, cleaned=cleaned, extracted=extracted, metadata=metadata)
    try:
        return await storage.write_multi(params)
    except (CrawlCacheError, OSError, ValueError) as e:
        log.error("Failed to cache %s (source=%s): %s", url, source, e)
        return None

"""Eviction policy shared by every storage backend.

Two pressures keep a backend bounded:

1. TTL expiry: an entry is expired once ``now >= timestamp + ttl``
   (``ttl == 0`` never expires).
2. Capacity: while the item count or total byte size is over its limit,
   the entry with the smallest ``last_access_time`` goes first.

Backends reduce their entries to :class:`EvictionCandidate` tuples and
remove whatever :func:`select_lru_victims` returns.
"""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Iterable


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def is_expired(timestamp_ms: int, ttl: int, now: int) -> bool:
    """Check whether an entry created at ``timestamp_ms`` has outlived ``ttl``."""
    if ttl == 0:
        return False
    return now >= timestamp_ms + ttl


@dataclasses.dataclass(frozen=True)
class EvictionCandidate:
    """The slice of an entry the LRU policy cares about."""

    key: str
    size_bytes: int
    last_access_time: int


def select_lru_victims(
    candidates: Iterable[EvictionCandidate],
    *,
    max_items: int,
    max_size_bytes: int,
) -> list[str]:
    """Return the keys to evict, least recently used first.

    Eviction stops as soon as both limits hold. Entries with equal
    ``last_access_time`` are evicted in the order they were supplied.
    """
    ordered = sorted(candidates, key=lambda c: c.last_access_time)
    count = len(ordered)
    total = sum(c.size_bytes for c in ordered)

    victims: list[str] = []
    for candidate in ordered:
        if count <= max_items and total <= max_size_bytes:
            break
        victims.append(candidate.key)
        count -= 1
        total -= candidate.size_bytes
    return victims

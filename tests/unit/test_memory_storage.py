"""Tests for the in-memory resource backend: TTL, LRU, tiers and stats."""

from __future__ import annotations

import asyncio

import pytest

from crawl_cache.core.config import StorageConfig
from crawl_cache.exceptions import ResourceNotFoundError
from crawl_cache.resources.backends.memory import MemoryResourceStorage
from crawl_cache.resources.models import WriteMultiParams
from crawl_cache.resources.protocols import IResourceStorage
from tests.fakes.fake_clock import FakeClock


class TestMemoryBasics:
    def test_satisfies_protocol(self, memory_storage: MemoryResourceStorage) -> None:
        assert isinstance(memory_storage, IResourceStorage)

    async def test_write_then_read(self, memory_storage: MemoryResourceStorage, clock: FakeClock) -> None:
        uri = await memory_storage.write("https://example.com/page", "hello", {"title": "Example"})
        assert uri == f"memory://raw/example_com_page_{clock.now}"

        resource = await memory_storage.read(uri)
        assert resource.uri == uri
        assert resource.text == "hello"
        assert resource.name == "Example"
        assert resource.mime_type == "text/plain"
        assert resource.metadata.url == "https://example.com/page"
        assert resource.metadata.ttl == 1000

    async def test_read_missing_raises(self, memory_storage: MemoryResourceStorage) -> None:
        with pytest.raises(ResourceNotFoundError) as excinfo:
            await memory_storage.read("memory://raw/nothing_1")
        assert excinfo.value.uri == "memory://raw/nothing_1"

    async def test_delete(self, memory_storage: MemoryResourceStorage) -> None:
        uri = await memory_storage.write("https://example.com", "x")
        await memory_storage.delete(uri)
        assert await memory_storage.exists(uri) is False
        with pytest.raises(ResourceNotFoundError):
            await memory_storage.delete(uri)

    async def test_evict_missing_is_silent(self, memory_storage: MemoryResourceStorage) -> None:
        await memory_storage.evict("memory://raw/nothing_1")

    async def test_same_millisecond_writes_get_distinct_uris(self, memory_storage: MemoryResourceStorage) -> None:
        first = await memory_storage.write("https://example.com", "a")
        second = await memory_storage.write("https://example.com", "b")
        assert first != second
        assert (await memory_storage.read(first)).text == "a"
        assert (await memory_storage.read(second)).text == "b"

    async def test_read_returns_a_copy(self, memory_storage: MemoryResourceStorage) -> None:
        uri = await memory_storage.write("https://example.com", "original")
        resource = await memory_storage.read(uri)
        resource.text = "mutated"
        resource.metadata.title = "mutated"
        again = await memory_storage.read(uri)
        assert again.text == "original"
        assert again.metadata.title is None

    async def test_invalid_url_rejected(self, memory_storage: MemoryResourceStorage) -> None:
        with pytest.raises(ValueError):
            await memory_storage.write("not a url", "x")

    def test_keyword_options_override_config(self) -> None:
        config = StorageConfig(ttl=5, max_items=7, max_size=1)
        storage = MemoryResourceStorage(config, max_items=2)
        assert storage._default_ttl == 5000
        assert storage._max_items == 2
        assert storage._max_size_bytes == 1024 * 1024


class TestMemoryTtl:
    async def test_expires_after_ttl_real_clock(self) -> None:
        storage = MemoryResourceStorage(default_ttl=1000)
        uri = await storage.write("https://a.example", "A")
        assert await storage.exists(uri) is True
        await asyncio.sleep(1.1)
        assert await storage.exists(uri) is False

    async def test_boundary(self, memory_storage: MemoryResourceStorage, clock: FakeClock) -> None:
        uri = await memory_storage.write("https://example.com", "x")
        clock.advance(999)
        assert await memory_storage.exists(uri) is True
        clock.advance(1)
        assert await memory_storage.exists(uri) is False

    async def test_expired_read_is_not_found(self, memory_storage: MemoryResourceStorage, clock: FakeClock) -> None:
        uri = await memory_storage.write("https://example.com", "x")
        clock.advance(5000)
        with pytest.raises(ResourceNotFoundError):
            await memory_storage.read(uri)

    async def test_delete_ignores_ttl(self, memory_storage: MemoryResourceStorage, clock: FakeClock) -> None:
        uri = await memory_storage.write("https://example.com", "x")
        clock.advance(5000)
        await memory_storage.delete(uri)
        assert uri not in memory_storage._cache

    async def test_zero_ttl_never_expires(self, memory_storage: MemoryResourceStorage, clock: FakeClock) -> None:
        uri = await memory_storage.write("https://example.com", "x", {"ttl": 0})
        clock.advance(10**9)
        assert await memory_storage.exists(uri) is True

    async def test_per_write_ttl(self, memory_storage: MemoryResourceStorage, clock: FakeClock) -> None:
        uri = await memory_storage.write("https://example.com", "x", {"ttl": 5000})
        clock.advance(4000)
        assert await memory_storage.exists(uri) is True

    async def test_list_skips_expired(self, memory_storage: MemoryResourceStorage, clock: FakeClock) -> None:
        short = await memory_storage.write("https://example.com/short", "x")
        keep = await memory_storage.write("https://example.com/keep", "x", {"ttl": 0})
        clock.advance(2000)
        assert [r.uri for r in await memory_storage.list()] == [keep]
        assert short not in memory_storage._cache


class TestMemoryLru:
    async def test_read_protects_entry_from_eviction(self, clock: FakeClock) -> None:
        storage = MemoryResourceStorage(default_ttl=0, max_items=3, clock=clock)
        uri1 = await storage.write("https://example.com/1", "one")
        clock.advance(10)
        uri2 = await storage.write("https://example.com/2", "two")
        clock.advance(10)
        uri3 = await storage.write("https://example.com/3", "three")
        clock.advance(10)

        await storage.read(uri1)
        clock.advance(10)
        uri4 = await storage.write("https://example.com/4", "four")

        assert await storage.exists(uri2) is False
        for uri in (uri1, uri3, uri4):
            assert await storage.exists(uri) is True

    async def test_read_advances_last_access_time(self, memory_storage: MemoryResourceStorage, clock: FakeClock) -> None:
        uri = await memory_storage.write("https://example.com", "x")
        written = clock.now
        clock.advance(250)
        resource = await memory_storage.read(uri)
        assert resource.metadata.last_access_time == written + 250

    async def test_size_limit(self, clock: FakeClock) -> None:
        storage = MemoryResourceStorage(default_ttl=0, max_size_bytes=5000, clock=clock)
        uris = []
        for i in range(3):
            uris.append(await storage.write(f"https://example.com/{i}", "x" * 2000))
            clock.advance(10)

        stats = await storage.get_stats()
        assert stats.item_count == 2
        assert stats.total_size_bytes <= 5000
        assert await storage.exists(uris[0]) is False

    async def test_entry_larger_than_limit_is_dropped(self, clock: FakeClock) -> None:
        storage = MemoryResourceStorage(default_ttl=0, max_size_bytes=100, clock=clock)
        uri = await storage.write("https://example.com", "x" * 1000)
        assert await storage.exists(uri) is False

    async def test_zero_items_keeps_nothing(self, clock: FakeClock) -> None:
        storage = MemoryResourceStorage(max_items=0, clock=clock)
        await storage.write("https://example.com", "x")
        assert await storage.list() == []


class TestMemoryMultiTier:
    async def test_write_multi_and_lookups(self, memory_storage: MemoryResourceStorage) -> None:
        url = "https://c.example/doc"
        result = await memory_storage.write_multi(
            WriteMultiParams(url=url, raw="r", cleaned="c", extracted="e", metadata={"extractionPrompt": "q"})
        )
        assert result.raw.startswith("memory://raw/")
        assert result.cleaned is not None and result.cleaned.startswith("memory://cleaned/")
        assert result.extracted is not None and result.extracted.startswith("memory://extracted/")

        extracted = await memory_storage.find_by_url_and_extract(url, "q")
        assert [r.uri for r in extracted] == [result.extracted]
        assert extracted[0].text == "e"

        assert {r.uri for r in await memory_storage.find_by_url(url)} == {
            result.raw,
            result.cleaned,
            result.extracted,
        }

    async def test_prompt_only_on_extracted_tier(self, memory_storage: MemoryResourceStorage) -> None:
        url = "https://c.example/doc"
        result = await memory_storage.write_multi(
            WriteMultiParams(url=url, raw="r", cleaned="c", extracted="e", metadata={"extract": "q"})
        )
        unprompted = await memory_storage.find_by_url_and_extract(url)
        assert {r.uri for r in unprompted} == {result.raw, result.cleaned}
        assert await memory_storage.find_by_url_and_extract(url, "other") == []

    async def test_optional_tiers_skipped(self, memory_storage: MemoryResourceStorage) -> None:
        result = await memory_storage.write_multi(WriteMultiParams(url="https://c.example", raw="r", cleaned=""))
        assert result.cleaned is None
        assert result.extracted is None
        assert len(await memory_storage.list()) == 1

    async def test_tiers_share_a_stamp(self, memory_storage: MemoryResourceStorage) -> None:
        result = await memory_storage.write_multi(WriteMultiParams(url="https://c.example", raw="r", cleaned="c"))
        assert result.raw.split("/")[-1] == result.cleaned.split("/")[-1]  # type: ignore[union-attr]

    async def test_tiers_are_independent(self, memory_storage: MemoryResourceStorage) -> None:
        result = await memory_storage.write_multi(WriteMultiParams(url="https://c.example", raw="r", cleaned="c"))
        await memory_storage.delete(result.raw)
        assert (await memory_storage.read(result.cleaned)).text == "c"  # type: ignore[arg-type]

    async def test_accepts_plain_dict_params(self, memory_storage: MemoryResourceStorage) -> None:
        result = await memory_storage.write_multi({"url": "https://c.example", "raw": "r"})  # type: ignore[arg-type]
        assert (await memory_storage.read(result.raw)).text == "r"

    async def test_find_by_url_newest_first(self, memory_storage: MemoryResourceStorage, clock: FakeClock) -> None:
        older = await memory_storage.write("https://example.com", "old")
        clock.advance(100)
        newer = await memory_storage.write("https://example.com", "new")
        await memory_storage.write("https://other.example", "x")
        assert [r.uri for r in await memory_storage.find_by_url("https://example.com")] == [newer, older]


class TestMemoryStats:
    async def test_stats_match_contents(self, memory_storage: MemoryResourceStorage) -> None:
        await memory_storage.write("https://example.com/a", "aaa")
        await memory_storage.write("https://example.com/b", "bbbbbb")

        stats = await memory_storage.get_stats()
        assert stats.item_count == 2
        assert stats.total_size_bytes == sum(r.size_bytes for r in stats.resources)
        assert stats.default_ttl == 1000
        assert stats.max_items == 1000
        assert {r.url for r in stats.resources} == {"https://example.com/a", "https://example.com/b"}

    async def test_size_counts_utf8_bytes(self, memory_storage: MemoryResourceStorage) -> None:
        ascii_uri = await memory_storage.write("https://example.com/a", "aa")
        wide_uri = await memory_storage.write("https://example.com/b", "éé")
        sizes = {r.uri: r.size_bytes for r in (await memory_storage.get_stats()).resources}
        assert sizes[wide_uri] == sizes[ascii_uri] + 2

    async def test_cleanup_enforces_limits(self, clock: FakeClock) -> None:
        storage = MemoryResourceStorage(default_ttl=1000, clock=clock)
        await storage.write("https://example.com/a", "x")
        await storage.write("https://example.com/b", "x", {"ttl": 0})
        clock.advance(2000)
        await storage.cleanup()
        assert len(storage._cache) == 1


class TestMemoryBackgroundCleanup:
    async def test_start_and_stop_are_idempotent(self, memory_storage: MemoryResourceStorage) -> None:
        memory_storage.start_cleanup()
        memory_storage.start_cleanup()
        assert memory_storage._reclaimer.running
        memory_storage.stop_cleanup()
        memory_storage.stop_cleanup()
        assert not memory_storage._reclaimer.running

    async def test_background_sweep_drops_expired(self, clock: FakeClock) -> None:
        storage = MemoryResourceStorage(default_ttl=1000, cleanup_interval=10, clock=clock)
        await storage.write("https://example.com", "x")
        clock.advance(2000)

        storage.start_cleanup()
        try:
            await asyncio.sleep(0.1)
        finally:
            storage.stop_cleanup()
        assert storage._cache == {}

    def test_zero_interval_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="cleanup interval"):
            MemoryResourceStorage(cleanup_interval=0)

"""Shared fixtures for crawl-cache tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from crawl_cache.resources.backends.filesystem import FileSystemResourceStorage
from crawl_cache.resources.backends.memory import MemoryResourceStorage
from tests.fakes.fake_clock import FakeClock

_STORAGE_ENV = (
    "MCP_RESOURCE_STORAGE",
    "MCP_RESOURCE_TTL",
    "MCP_RESOURCE_MAX_SIZE",
    "MCP_RESOURCE_MAX_ITEMS",
    "MCP_RESOURCE_CLEANUP_INTERVAL",
    "MCP_RESOURCE_FILESYSTEM_ROOT",
)


@pytest.fixture(autouse=True)
def _clean_storage_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host env vars from leaking into default settings."""
    for name in _STORAGE_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_storage(clock: FakeClock) -> MemoryResourceStorage:
    """Memory backend with a 1s default TTL on a fake clock."""
    return MemoryResourceStorage(default_ttl=1000, clock=clock)


@pytest.fixture
def fs_root(tmp_path: Path) -> Path:
    return tmp_path / "resources"


@pytest.fixture
async def fs_storage(fs_root: Path, clock: FakeClock) -> FileSystemResourceStorage:
    """Initialized filesystem backend with a 1s default TTL on a fake clock."""
    storage = FileSystemResourceStorage(fs_root, default_ttl=1000, clock=clock)
    await storage.init()
    return storage

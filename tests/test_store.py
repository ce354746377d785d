from __future__ import annotations

import pytest

from conftest import FakeClock
from settings import Settings
from store import JsonFileStore, MemoryStore, create_store


@pytest.mark.asyncio
async def test_memory_store_expires_entries_lazily():
    clock = FakeClock()
    store = MemoryStore(clock=clock)
    await store.set("k", {"v": 1}, ttl_seconds=5)
    assert await store.get("k") == {"v": 1}

    clock.advance(6)
    assert len(store) == 1
    assert await store.get("k") is None
    assert len(store) == 0


@pytest.mark.asyncio
async def test_memory_store_without_ttl_keeps_entries():
    clock = FakeClock()
    store = MemoryStore(clock=clock)
    await store.set("k", "v")
    clock.advance(10_000)
    assert await store.get("k") == "v"
    await store.delete("k")
    assert await store.get("k") is None


@pytest.mark.asyncio
async def test_json_file_store_persists_between_instances(tmp_path):
    await JsonFileStore(str(tmp_path)).set("scrape:key", {"title": "hello"}, ttl_seconds=60)
    assert await JsonFileStore(str(tmp_path)).get("scrape:key") == {"title": "hello"}


@pytest.mark.asyncio
async def test_json_file_store_expiry_and_delete(tmp_path):
    clock = FakeClock()
    store = JsonFileStore(str(tmp_path), clock=clock)
    await store.set("a", 1, ttl_seconds=5)
    await store.set("b", 2)

    clock.advance(6)
    assert await store.get("a") is None
    assert await store.get("b") == 2

    await store.delete("b")
    await store.delete("missing")
    assert await store.get("b") is None


@pytest.mark.asyncio
async def test_json_file_store_treats_corrupt_files_as_miss(tmp_path):
    store = JsonFileStore(str(tmp_path))
    await store.set("k", "v")
    for path in tmp_path.iterdir():
        path.write_text("{not json", encoding="utf-8")
    assert await store.get("k") is None


def test_create_store_picks_backend(tmp_path):
    assert isinstance(create_store(Settings(store_backend="memory")), MemoryStore)
    assert isinstance(create_store(Settings(store_backend="file", store_dir=str(tmp_path))), JsonFileStore)
    with pytest.raises(ValueError):
        create_store(Settings(store_backend="redis"))

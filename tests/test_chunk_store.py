"""Tests for the in-memory chunk staging map."""

import asyncio
import time

import pytest

from app.exceptions import InvalidIndex, MetadataConflict, StagingEntryNotFound


@pytest.mark.asyncio
async def test_ensure_creates_entry_once(store):
    first = await store.ensure("movie", 3, "mp4")
    second = await store.ensure("movie", 3, "mp4")

    assert first is second
    assert len(store) == 1
    assert first.total_chunks == 3
    assert store.snapshot("movie").received == []


@pytest.mark.asyncio
async def test_concurrent_ensure_creates_single_entry(store):
    entries = await asyncio.gather(*(store.ensure("movie", 4, "mp4") for _ in range(20)))

    assert len({id(entry) for entry in entries}) == 1
    assert len(store) == 1


@pytest.mark.asyncio
async def test_ensure_rejects_conflicting_total_chunks(store):
    await store.ensure("movie", 3, "mp4")

    with pytest.raises(MetadataConflict):
        await store.ensure("movie", 4, "mp4")

    assert store.snapshot("movie").total_chunks == 3


@pytest.mark.asyncio
async def test_ensure_rejects_conflicting_extension(store):
    await store.ensure("movie", 3, "mp4")

    with pytest.raises(MetadataConflict):
        await store.ensure("movie", 3, "mkv")


@pytest.mark.asyncio
async def test_append_fills_slot_by_index(store):
    await store.ensure("doc", 3, "txt")
    await store.append_chunk("doc", 2, b"middle")

    snapshot = store.snapshot("doc")
    assert snapshot.received == [2]
    assert store.ordered_chunks("doc") == [b"middle"]


@pytest.mark.asyncio
@pytest.mark.parametrize("chunk_number", [0, 4, -1])
async def test_append_out_of_range_raises_invalid_index(store, chunk_number):
    await store.ensure("doc", 3, "txt")

    with pytest.raises(InvalidIndex):
        await store.append_chunk("doc", chunk_number, b"x")

    assert store.snapshot("doc").received == []


@pytest.mark.asyncio
async def test_append_to_unknown_file_raises(store):
    with pytest.raises(StagingEntryNotFound):
        await store.append_chunk("ghost", 1, b"x")


@pytest.mark.asyncio
async def test_resubmitted_chunk_overwrites_slot(store):
    await store.ensure("doc", 2, "txt")
    await store.append_chunk("doc", 1, b"first")
    await store.append_chunk("doc", 2, b"other")
    await store.append_chunk("doc", 1, b"second")

    assert store.ordered_chunks("doc") == [b"second", b"other"]


@pytest.mark.asyncio
async def test_is_complete_only_when_every_slot_filled(store):
    await store.ensure("doc", 2, "txt")
    assert not store.is_complete("doc")

    await store.append_chunk("doc", 2, b"b")
    assert not store.is_complete("doc")

    await store.append_chunk("doc", 1, b"")
    assert store.is_complete("doc")


@pytest.mark.asyncio
async def test_is_complete_false_for_unknown_file(store):
    assert not store.is_complete("ghost")


@pytest.mark.asyncio
async def test_evict_removes_entry_and_is_idempotent(store):
    entry = await store.ensure("doc", 1, "txt")
    await store.append_chunk("doc", 1, b"a")

    await store.evict("doc")
    await store.evict("doc")

    assert "doc" not in store
    assert entry.evicted
    with pytest.raises(StagingEntryNotFound):
        await store.append_chunk("doc", 1, b"a")


@pytest.mark.asyncio
async def test_evict_expired_drops_only_idle_entries(store):
    idle = await store.ensure("idle", 2, "bin")
    await store.ensure("busy", 2, "bin")
    idle.last_updated = time.monotonic() - 120

    expired = await store.evict_expired(60)

    assert expired == ["idle"]
    assert "idle" not in store
    assert "busy" in store


@pytest.mark.asyncio
async def test_evict_expired_skips_locked_entry(store):
    entry = await store.ensure("assembling", 1, "bin")
    entry.last_updated = time.monotonic() - 120

    async with entry.lock:
        assert await store.evict_expired(60) == []

    assert await store.evict_expired(60) == ["assembling"]


@pytest.mark.asyncio
async def test_concurrent_appends_to_distinct_slots(store):
    await store.ensure("doc", 50, "txt")

    await asyncio.gather(
        *(store.append_chunk("doc", n, f"chunk-{n}".encode()) for n in range(1, 51))
    )

    assert store.ordered_chunks("doc") == [f"chunk-{n}".encode() for n in range(1, 51)]


@pytest.mark.asyncio
async def test_entry_memory_grows_with_received_chunks(store):
    entry = await store.ensure("sparse", 10 ** 12, "bin")
    await store.append_chunk("sparse", 10 ** 12, b"last")

    assert len(entry.slots) == 1
    assert store.snapshot("sparse").received == [10 ** 12]
    assert not store.is_complete("sparse")


@pytest.mark.asyncio
async def test_exclusive_on_unknown_file(store):
    async with store.exclusive("ghost") as staged:
        assert not staged


@pytest.mark.asyncio
async def test_exclusive_after_eviction_while_waiting(store):
    entry = await store.ensure("doc", 1, "txt")
    seen = []

    async def waiter():
        async with store.exclusive("doc") as staged:
            seen.append(staged)

    async with entry.lock:
        task = asyncio.create_task(waiter())
        await asyncio.sleep(0)
        await store.evict("doc")
    await task

    assert seen == [False]


@pytest.mark.asyncio
async def test_exclusive_blocks_appends(store):
    await store.ensure("doc", 2, "txt")
    order = []

    async def append():
        await store.append_chunk("doc", 1, b"a")
        order.append("append")

    async with store.exclusive("doc") as staged:
        assert staged
        task = asyncio.create_task(append())
        await asyncio.sleep(0)
        order.append("locked")
    await task

    assert order == ["locked", "append"]

import asyncio

import pytest

from application.ports.dedup_store import DedupEntry
from infrastructure.cache import InMemoryDedupStore


@pytest.mark.asyncio
async def test_put_if_absent_returns_existing_entry():
    store = InMemoryDedupStore()

    assert await store.put_if_absent("k", DedupEntry(token="a"), 60) is None
    existing = await store.put_if_absent("k", DedupEntry(token="b"), 60)

    assert existing == DedupEntry(token="a")
    assert existing.completed is False


@pytest.mark.asyncio
async def test_only_owner_can_complete_or_release():
    store = InMemoryDedupStore()
    await store.put_if_absent("k", DedupEntry(token="a"), 60)

    assert await store.replace("k", "b", DedupEntry(token="b", result="{}"), 60) is False
    assert await store.release("k", "b") is False

    assert await store.replace("k", "a", DedupEntry(token="a", result='{"ok": true}'), 60) is True
    entry = await store.get("k")
    assert entry.completed is True
    assert entry.result == '{"ok": true}'


@pytest.mark.asyncio
async def test_released_key_can_be_claimed_again():
    store = InMemoryDedupStore()
    await store.put_if_absent("k", DedupEntry(token="a"), 60)

    assert await store.release("k", "a") is True
    assert await store.get("k") is None
    assert await store.put_if_absent("k", DedupEntry(token="b"), 60) is None


@pytest.mark.asyncio
async def test_entries_expire_after_ttl():
    store = InMemoryDedupStore()
    await store.put_if_absent("k", DedupEntry(token="a"), 0.01)

    await asyncio.sleep(0.02)

    assert await store.get("k") is None
    assert await store.put_if_absent("k", DedupEntry(token="b"), 60) is None


@pytest.mark.asyncio
async def test_expired_entries_are_purged_without_being_read():
    store = InMemoryDedupStore(purge_every=4)
    for n in range(3):
        await store.put_if_absent(f"done-{n}", DedupEntry(token="t", result="{}"), 0.01)

    await asyncio.sleep(0.02)
    assert store.size() == 3

    # the fourth write triggers a purge of keys that were never replayed
    await store.put_if_absent("fresh", DedupEntry(token="f"), 60)

    assert store.size() == 1
    assert (await store.get("fresh")).token == "f"


@pytest.mark.asyncio
async def test_concurrent_claims_have_single_winner():
    store = InMemoryDedupStore()

    results = await asyncio.gather(
        *(store.put_if_absent("k", DedupEntry(token=str(i)), 60) for i in range(10))
    )

    assert sum(1 for r in results if r is None) == 1

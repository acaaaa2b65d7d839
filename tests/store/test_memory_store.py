from __future__ import annotations

import pytest

from tunequeue.core.errors import StoreUnavailableError
from tunequeue.store.memory import MemoryStore


class _Clock:
    def __init__(self) -> None:
        self.value = 100.0

    def __call__(self) -> float:
        return self.value


@pytest.mark.asyncio
async def test_lists_behave_like_redis_lists() -> None:
    store = MemoryStore()
    for value in ("a", "b", "a", "c"):
        await store.rpush("k", value)

    assert await store.llen("k") == 4
    assert await store.lindex("k", -1) == "c"
    assert await store.lindex("k", 9) is None
    assert await store.lrange("k", 1, 2) == ["b", "a"]
    assert await store.lrem("k", "a", 1) == 1
    assert await store.lrange("k") == ["b", "a", "c"]
    assert await store.lset("k", 5, "x") is False
    assert await store.lset("k", 0, "x") is True
    assert await store.delete("k") == 1
    assert await store.lrange("k") == []


@pytest.mark.asyncio
async def test_lcas_only_writes_the_expected_slot() -> None:
    store = MemoryStore()
    await store.rpush("k", "old")

    assert await store.lcas("k", 0, "other", "new") is False
    assert await store.lcas("k", 0, "old", "new") is True
    assert await store.lcas("k", 0, "old", "newer") is False
    assert await store.lrange("k") == ["new"]


@pytest.mark.asyncio
async def test_values_expire_after_their_ttl() -> None:
    clock = _Clock()
    store = MemoryStore(clock=clock)
    await store.set("marker", "v", ttl_s=10)
    await store.set("forever", "v")

    clock.value += 9.9
    assert await store.get("marker") == "v"
    clock.value += 0.2
    assert await store.get("marker") is None
    assert await store.get("forever") == "v"
    assert await store.unset("forever") == 1


@pytest.mark.asyncio
async def test_publish_is_not_replayed_to_late_subscribers() -> None:
    store = MemoryStore()
    assert await store.publish("chan", "early") == 0

    subscription = await store.subscribe("chan")
    assert await store.publish("chan", "live") == 1

    assert await subscription.get_message(0.05) == "live"
    assert await subscription.get_message(0.01) is None

    await subscription.close()
    assert store.subscriber_count("chan") == 0


@pytest.mark.asyncio
async def test_close_disconnects_subscribers_and_rejects_operations() -> None:
    store = MemoryStore()
    subscription = await store.subscribe("chan")

    await store.close()

    assert store.closed
    assert await store.ping() is False
    with pytest.raises(StoreUnavailableError):
        await subscription.get_message(0.05)
    with pytest.raises(StoreUnavailableError) as excinfo:
        await store.rpush("k", "v")
    assert excinfo.value.operation == "rpush"

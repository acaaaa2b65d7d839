from __future__ import annotations

from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from tunequeue.config import StoreConfig
from tunequeue.core.errors import StoreUnavailableError
from tunequeue.store.factory import build_store
from tunequeue.store.memory import MemoryStore
from tunequeue.store.redis_store import RedisStore, RedisSubscription


class FakeRedis:
    """Tiny subset of ``redis.asyncio.Redis`` used by :class:`RedisStore`."""

    def __init__(self) -> None:
        self.lists: dict[str, list[str]] = {}
        self.values: dict[str, tuple[str, int | None]] = {}
        self.published: list[tuple[str, str]] = []
        self.fail_with: Exception | None = None
        self.closed = False

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def register_script(self, source: str):
        assert "LINDEX" in source

        async def script(keys: list[str], args: list[Any]) -> int:
            self._check()
            items = self.lists.get(keys[0], [])
            index, expected, value = int(args[0]), args[1], args[2]
            if 0 <= index < len(items) and items[index] == expected:
                items[index] = value
                return 1
            return 0

        return script

    async def rpush(self, key: str, value: str) -> int:
        self._check()
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        self._check()
        items = self.lists.get(key, [])
        return items[start:] if stop == -1 else items[start : stop + 1]

    async def lset(self, key: str, index: int, value: str) -> bool:
        self._check()
        items = self.lists.get(key)
        if items is None:
            raise ResponseError("no such key")
        if not 0 <= index < len(items):
            raise ResponseError("index out of range")
        items[index] = value
        return True

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._check()
        self.values[key] = (value, ex)
        return True

    async def get(self, key: str) -> str | None:
        self._check()
        entry = self.values.get(key)
        return entry[0] if entry else None

    async def publish(self, channel: str, message: str) -> int:
        self._check()
        self.published.append((channel, message))
        return 2

    async def ping(self) -> bool:
        self._check()
        return True

    async def aclose(self) -> None:
        self.closed = True


class FakePubSub:
    def __init__(self, messages: list[Any]) -> None:
        self.messages = list(messages)
        self.unsubscribed: list[str] = []
        self.closed = False
        self.error: Exception | None = None

    async def get_message(self, ignore_subscribe_messages: bool, timeout: float) -> Any:
        assert ignore_subscribe_messages
        if self.error is not None:
            raise self.error
        return self.messages.pop(0) if self.messages else None

    async def unsubscribe(self, channel: str) -> None:
        self.unsubscribed.append(channel)

    async def aclose(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_list_and_marker_operations_delegate_to_redis() -> None:
    client = FakeRedis()
    store = RedisStore(client)

    assert await store.rpush("k", "a") == 1
    assert await store.rpush("k", "b") == 2
    assert await store.lrange("k") == ["a", "b"]
    await store.set("m", "v", ttl_s=60)
    assert client.values["m"] == ("v", 60)
    assert await store.get("m") == "v"
    assert await store.publish("chan", "hello") == 2
    assert await store.ping() is True


@pytest.mark.asyncio
async def test_lcas_runs_the_compare_and_set_script() -> None:
    client = FakeRedis()
    store = RedisStore(client)
    await store.rpush("k", "old")

    assert await store.lcas("k", 0, "stale", "new") is False
    assert await store.lcas("k", 0, "old", "new") is True
    assert client.lists["k"] == ["new"]


@pytest.mark.asyncio
async def test_lset_reports_missing_slots() -> None:
    store = RedisStore(FakeRedis())

    assert await store.lset("missing", 0, "v") is False
    await store.rpush("k", "a")
    assert await store.lset("k", 3, "v") is False
    assert await store.lset("k", 0, "v") is True


@pytest.mark.asyncio
async def test_connection_errors_surface_as_store_unavailable() -> None:
    client = FakeRedis()
    store = RedisStore(client)
    client.fail_with = RedisConnectionError("connection refused")

    with pytest.raises(StoreUnavailableError) as excinfo:
        await store.rpush("k", "v")
    assert excinfo.value.operation == "rpush"
    with pytest.raises(StoreUnavailableError):
        await store.lcas("k", 0, "a", "b")
    with pytest.raises(StoreUnavailableError):
        await store.ping()

    await store.close()
    assert client.closed


@pytest.mark.asyncio
async def test_subscription_decodes_messages_and_maps_errors() -> None:
    pubsub = FakePubSub(
        [{"type": "message", "data": b'{"type":"started"}'}, {"type": "pmessage", "data": "x"}]
    )
    subscription = RedisSubscription(pubsub, "chan")

    assert await subscription.get_message(0.1) == '{"type":"started"}'
    assert await subscription.get_message(0.1) is None

    pubsub.error = OSError("reset by peer")
    with pytest.raises(StoreUnavailableError):
        await subscription.get_message(0.1)

    await subscription.close()
    await subscription.close()
    assert pubsub.unsubscribed == ["chan"]
    assert pubsub.closed
    assert await subscription.get_message(0.1) is None


def test_build_store_selects_the_configured_backend() -> None:
    memory = build_store(StoreConfig(backend="memory", redis_url="", key_prefix="t"))
    redis_store = build_store(
        StoreConfig(backend="redis", redis_url="redis://localhost:6399/0", key_prefix="t")
    )

    assert isinstance(memory, MemoryStore)
    assert isinstance(redis_store, RedisStore)
    assert redis_store.name == "redis"

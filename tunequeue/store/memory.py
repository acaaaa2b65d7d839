"""In-process store backend for tests and single-process deployments."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import time

from tunequeue.core.errors import StoreUnavailableError
from tunequeue.logging import get_logger

logger = get_logger(__name__)

_CLOSED = object()


def _resolve_index(length: int, index: int) -> int | None:
    resolved = index + length if index < 0 else index
    if resolved < 0 or resolved >= length:
        return None
    return resolved


class MemorySubscription:
    """Queue-backed subscription handed out by :class:`MemoryStore`."""

    def __init__(self, store: MemoryStore, channel: str) -> None:
        self.channel = channel
        self._store = store
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False
        self._lost = False

    def _deliver(self, message: str) -> None:
        if not self._closed:
            self._queue.put_nowait(message)

    def _disconnect(self) -> None:
        self._lost = True
        self._queue.put_nowait(_CLOSED)

    async def get_message(self, timeout: float) -> str | None:
        if self._closed:
            return None
        if self._lost and self._queue.empty():
            raise StoreUnavailableError("Subscription connection lost", operation="subscribe")
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout=max(0.0, timeout))
        except TimeoutError:
            return None
        if item is _CLOSED:
            raise StoreUnavailableError("Subscription connection lost", operation="subscribe")
        return item  # type: ignore[return-value]

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._store._detach(self)


class MemoryStore:
    """Dictionary-backed implementation of the store capability."""

    name = "memory"

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._lists: dict[str, list[str]] = {}
        self._values: dict[str, tuple[str, float | None]] = {}
        self._subscribers: dict[str, list[MemorySubscription]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self, operation: str) -> None:
        if self._closed:
            raise StoreUnavailableError("Memory store is closed", operation=operation)

    async def rpush(self, key: str, value: str) -> int:
        self._ensure_open("rpush")
        async with self._lock:
            items = self._lists.setdefault(key, [])
            items.append(value)
            return len(items)

    async def lindex(self, key: str, index: int) -> str | None:
        self._ensure_open("lindex")
        items = self._lists.get(key, [])
        position = _resolve_index(len(items), index)
        return None if position is None else items[position]

    async def lrem(self, key: str, value: str, count: int = 0) -> int:
        self._ensure_open("lrem")
        async with self._lock:
            items = self._lists.get(key)
            if not items:
                return 0
            limit = abs(count) if count else len(items)
            positions = [i for i, item in enumerate(items) if item == value]
            if count < 0:
                positions = positions[::-1]
            doomed = set(positions[:limit])
            remaining = [item for i, item in enumerate(items) if i not in doomed]
            if remaining:
                self._lists[key] = remaining
            else:
                self._lists.pop(key, None)
            return len(doomed)

    async def llen(self, key: str) -> int:
        self._ensure_open("llen")
        return len(self._lists.get(key, []))

    async def lrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        self._ensure_open("lrange")
        items = self._lists.get(key, [])
        length = len(items)
        begin = max(0, start + length if start < 0 else start)
        end = stop + length if stop < 0 else stop
        if begin > end:
            return []
        return list(items[begin : end + 1])

    async def lset(self, key: str, index: int, value: str) -> bool:
        self._ensure_open("lset")
        async with self._lock:
            items = self._lists.get(key, [])
            position = _resolve_index(len(items), index)
            if position is None:
                return False
            items[position] = value
            return True

    async def lcas(self, key: str, index: int, expected: str, value: str) -> bool:
        self._ensure_open("lcas")
        async with self._lock:
            items = self._lists.get(key, [])
            position = _resolve_index(len(items), index)
            if position is None or items[position] != expected:
                return False
            items[position] = value
            return True

    async def delete(self, key: str) -> int:
        self._ensure_open("delete")
        async with self._lock:
            return 1 if self._lists.pop(key, None) is not None else 0

    async def set(self, key: str, value: str, *, ttl_s: int | None = None) -> None:
        self._ensure_open("set")
        expires_at = self._clock() + ttl_s if ttl_s else None
        async with self._lock:
            self._values[key] = (value, expires_at)

    async def get(self, key: str) -> str | None:
        self._ensure_open("get")
        entry = self._values.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            self._values.pop(key, None)
            return None
        return value

    async def unset(self, key: str) -> int:
        self._ensure_open("unset")
        async with self._lock:
            return 1 if self._values.pop(key, None) is not None else 0

    async def publish(self, channel: str, message: str) -> int:
        self._ensure_open("publish")
        subscribers = list(self._subscribers.get(channel, ()))
        for subscription in subscribers:
            subscription._deliver(message)
        return len(subscribers)

    async def subscribe(self, channel: str) -> MemorySubscription:
        self._ensure_open("subscribe")
        subscription = MemorySubscription(self, channel)
        self._subscribers.setdefault(channel, []).append(subscription)
        return subscription

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, ()))

    def _detach(self, subscription: MemorySubscription) -> None:
        listeners = self._subscribers.get(subscription.channel)
        if not listeners:
            return
        if subscription in listeners:
            listeners.remove(subscription)
        if not listeners:
            self._subscribers.pop(subscription.channel, None)

    async def ping(self) -> bool:
        return not self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for listeners in list(self._subscribers.values()):
            for subscription in listeners:
                subscription._disconnect()
        self._subscribers.clear()
        logger.debug("Memory store closed")


__all__ = ["MemoryStore", "MemorySubscription"]

"""Capability contract shared by all store backends."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Subscription(Protocol):
    """A live attachment to a single broadcast channel."""

    channel: str

    async def get_message(self, timeout: float) -> str | None:
        """Return the next message or ``None`` when ``timeout`` elapses.

        Raises :class:`~tunequeue.core.errors.StoreUnavailableError` once the
        underlying connection is lost.
        """

    async def close(self) -> None: ...


@runtime_checkable
class StoreBackend(Protocol):
    """Ordered lists, expiring key/value markers and topic broadcast.

    Every backend failure is raised as
    :class:`~tunequeue.core.errors.StoreUnavailableError`.
    """

    name: str

    async def rpush(self, key: str, value: str) -> int: ...

    async def lindex(self, key: str, index: int) -> str | None: ...

    async def lrem(self, key: str, value: str, count: int = 0) -> int: ...

    async def llen(self, key: str) -> int: ...

    async def lrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]: ...

    async def lset(self, key: str, index: int, value: str) -> bool: ...

    async def lcas(self, key: str, index: int, expected: str, value: str) -> bool:
        """Write ``value`` at ``index`` only if the slot still holds ``expected``."""

    async def delete(self, key: str) -> int: ...

    async def set(self, key: str, value: str, *, ttl_s: int | None = None) -> None: ...

    async def get(self, key: str) -> str | None: ...

    async def unset(self, key: str) -> int: ...

    async def publish(self, channel: str, message: str) -> int: ...

    async def subscribe(self, channel: str) -> Subscription: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


__all__ = ["StoreBackend", "Subscription"]

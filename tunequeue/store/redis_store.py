"""Redis implementation of the store capability (``redis.asyncio``)."""

from __future__ import annotations

from typing import Any

from redis import asyncio as aioredis
from redis.exceptions import RedisError, ResponseError

from tunequeue.core.errors import StoreUnavailableError
from tunequeue.logging import get_logger

logger = get_logger(__name__)

# KEYS[1] list, ARGV[1] index, ARGV[2] expected value, ARGV[3] replacement.
_COMPARE_AND_SET_LUA = """
local current = redis.call('LINDEX', KEYS[1], tonumber(ARGV[1]))
if current == ARGV[2] then
  redis.call('LSET', KEYS[1], tonumber(ARGV[1]), ARGV[3])
  return 1
end
return 0
"""


def _unavailable(operation: str, exc: BaseException) -> StoreUnavailableError:
    return StoreUnavailableError(f"Redis {operation} failed: {exc}", operation=operation)


class RedisSubscription:
    """Wrapper around a :class:`redis.asyncio.client.PubSub` attachment."""

    def __init__(self, pubsub: Any, channel: str) -> None:
        self.channel = channel
        self._pubsub = pubsub
        self._closed = False

    async def get_message(self, timeout: float) -> str | None:
        if self._closed:
            return None
        try:
            message = await self._pubsub.get_message(
                ignore_subscribe_messages=True, timeout=max(0.0, timeout)
            )
        except (RedisError, OSError) as exc:
            raise _unavailable("subscribe", exc) from exc
        if not message or message.get("type") != "message":
            return None
        data = message.get("data")
        if isinstance(data, bytes):
            return data.decode("utf-8")
        return data

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._pubsub.unsubscribe(self.channel)
        except (RedisError, OSError) as exc:
            logger.debug("Ignoring unsubscribe failure on %s: %s", self.channel, exc)
        try:
            await self._pubsub.aclose()
        except (RedisError, OSError) as exc:
            logger.debug("Ignoring pubsub close failure on %s: %s", self.channel, exc)


class RedisStore:
    """Store backend using Redis lists, expiring keys and pub/sub channels."""

    name = "redis"

    def __init__(self, client: Any) -> None:
        self._client = client
        self._cas_script = client.register_script(_COMPARE_AND_SET_LUA)

    @classmethod
    def from_url(cls, url: str) -> RedisStore:
        client = aioredis.from_url(url, decode_responses=True)
        return cls(client)

    @property
    def client(self) -> Any:
        return self._client

    async def rpush(self, key: str, value: str) -> int:
        try:
            return int(await self._client.rpush(key, value))
        except (RedisError, OSError) as exc:
            raise _unavailable("rpush", exc) from exc

    async def lindex(self, key: str, index: int) -> str | None:
        try:
            return await self._client.lindex(key, index)
        except (RedisError, OSError) as exc:
            raise _unavailable("lindex", exc) from exc

    async def lrem(self, key: str, value: str, count: int = 0) -> int:
        try:
            return int(await self._client.lrem(key, count, value))
        except (RedisError, OSError) as exc:
            raise _unavailable("lrem", exc) from exc

    async def llen(self, key: str) -> int:
        try:
            return int(await self._client.llen(key))
        except (RedisError, OSError) as exc:
            raise _unavailable("llen", exc) from exc

    async def lrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        try:
            return list(await self._client.lrange(key, start, stop))
        except (RedisError, OSError) as exc:
            raise _unavailable("lrange", exc) from exc

    async def lset(self, key: str, index: int, value: str) -> bool:
        try:
            await self._client.lset(key, index, value)
        except ResponseError as exc:
            message = str(exc).lower()
            if "out of range" in message or "no such key" in message:
                return False
            raise _unavailable("lset", exc) from exc
        except (RedisError, OSError) as exc:
            raise _unavailable("lset", exc) from exc
        return True

    async def lcas(self, key: str, index: int, expected: str, value: str) -> bool:
        try:
            result = await self._cas_script(keys=[key], args=[index, expected, value])
        except (RedisError, OSError) as exc:
            raise _unavailable("lcas", exc) from exc
        return int(result or 0) == 1

    async def delete(self, key: str) -> int:
        try:
            return int(await self._client.delete(key))
        except (RedisError, OSError) as exc:
            raise _unavailable("delete", exc) from exc

    async def set(self, key: str, value: str, *, ttl_s: int | None = None) -> None:
        try:
            await self._client.set(key, value, ex=ttl_s if ttl_s else None)
        except (RedisError, OSError) as exc:
            raise _unavailable("set", exc) from exc

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except (RedisError, OSError) as exc:
            raise _unavailable("get", exc) from exc

    async def unset(self, key: str) -> int:
        try:
            return int(await self._client.delete(key))
        except (RedisError, OSError) as exc:
            raise _unavailable("unset", exc) from exc

    async def publish(self, channel: str, message: str) -> int:
        try:
            return int(await self._client.publish(channel, message))
        except (RedisError, OSError) as exc:
            raise _unavailable("publish", exc) from exc

    async def subscribe(self, channel: str) -> RedisSubscription:
        pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        try:
            await pubsub.subscribe(channel)
        except (RedisError, OSError) as exc:
            try:
                await pubsub.aclose()
            except (RedisError, OSError):
                pass
            raise _unavailable("subscribe", exc) from exc
        return RedisSubscription(pubsub, channel)

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError) as exc:
            raise _unavailable("ping", exc) from exc

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except (RedisError, OSError) as exc:
            logger.warning("Failed to close redis connection: %s", exc)


__all__ = ["RedisStore", "RedisSubscription"]

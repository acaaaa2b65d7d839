"""Construct the configured store backend."""

from __future__ import annotations

from tunequeue.config import StoreConfig
from tunequeue.logging import get_logger
from tunequeue.store.base import StoreBackend
from tunequeue.store.memory import MemoryStore

logger = get_logger(__name__)


def build_store(config: StoreConfig) -> StoreBackend:
    """Return a store handle for ``config.backend``.

    The redis client connects lazily, so construction never blocks; callers
    use :meth:`StoreBackend.ping` to verify connectivity.
    """

    if config.backend == "memory":
        logger.info("Using in-process memory store", extra={"event": "store.init", "backend": "memory"})
        return MemoryStore()

    from tunequeue.store.redis_store import RedisStore

    logger.info("Using redis store", extra={"event": "store.init", "backend": "redis"})
    return RedisStore.from_url(config.redis_url)


__all__ = ["build_store"]

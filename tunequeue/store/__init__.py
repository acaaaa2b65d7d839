"""Storage backends holding the job lists, processing markers and channels."""

from tunequeue.store.base import StoreBackend, Subscription
from tunequeue.store.factory import build_store
from tunequeue.store.memory import MemoryStore

__all__ = ["MemoryStore", "StoreBackend", "Subscription", "build_store"]

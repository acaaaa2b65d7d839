"""Record-level access to the persisted job collections."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from tunequeue.config import DEFAULT_KEY_PREFIX
from tunequeue.core.errors import CorruptRecordError
from tunequeue.logging import get_logger
from tunequeue.models import Job
from tunequeue.store.base import StoreBackend

logger = get_logger(__name__)

Collection = Literal["pending", "completed", "failed"]

DEFAULT_MARKER_TTL_S = 24 * 60 * 60


@dataclass(slots=True, frozen=True)
class JobKeys:
    """Key layout for one queue namespace."""

    prefix: str = DEFAULT_KEY_PREFIX

    @property
    def pending(self) -> str:
        return f"{self.prefix}:jobs:pending"

    @property
    def completed(self) -> str:
        return f"{self.prefix}:jobs:completed"

    @property
    def failed(self) -> str:
        return f"{self.prefix}:jobs:failed"

    @property
    def processing_index(self) -> str:
        return f"{self.prefix}:jobs:processing"

    def collection(self, name: Collection) -> str:
        return {"pending": self.pending, "completed": self.completed, "failed": self.failed}[name]

    def marker(self, job_id: str) -> str:
        return f"{self.prefix}:job:processing:{job_id}"

    def progress_channel(self, job_id: str) -> str:
        return f"{self.prefix}:progress:{job_id}"


@dataclass(slots=True, frozen=True)
class StoredJob:
    """A decoded job together with the list slot and raw value it was read from."""

    index: int
    raw: str
    job: Job


class JobStore:
    """Read and write job records in the pending list and archives.

    List slots are addressed by index plus the raw value last read from them;
    writes to an existing slot are conditional on that raw value still being
    present. Corrupt records are removed from their collection when met.
    """

    def __init__(
        self,
        store: StoreBackend,
        *,
        keys: JobKeys | None = None,
        marker_ttl_s: int = DEFAULT_MARKER_TTL_S,
    ) -> None:
        self._store = store
        self.keys = keys or JobKeys()
        self._marker_ttl_s = marker_ttl_s

    @property
    def backend(self) -> StoreBackend:
        return self._store

    async def peek(self, collection: Collection, index: int = 0) -> StoredJob | None:
        """Return the record at ``index`` or raise :class:`CorruptRecordError`."""

        raw = await self._store.lindex(self.keys.collection(collection), index)
        if raw is None:
            return None
        try:
            job = Job.loads(raw)
        except CorruptRecordError as exc:
            exc.raw = raw
            raise
        return StoredJob(index=index, raw=raw, job=job)

    async def scan(self, collection: Collection) -> list[StoredJob]:
        """Return every decodable record of ``collection`` in list order."""

        key = self.keys.collection(collection)
        raw_items = await self._store.lrange(key, 0, -1)
        entries: list[StoredJob] = []
        dropped = 0
        for position, raw in enumerate(raw_items):
            try:
                job = Job.loads(raw)
            except CorruptRecordError as exc:
                await self._drop_corrupt(key, raw, exc)
                dropped += 1
                continue
            entries.append(StoredJob(index=position - dropped, raw=raw, job=job))
        return entries

    async def find(self, collection: Collection, job_id: str) -> StoredJob | None:
        for entry in await self.scan(collection):
            if entry.job.id == job_id:
                return entry
        return None

    async def append(self, collection: Collection, job: Job) -> StoredJob:
        raw = job.dumps()
        length = await self._store.rpush(self.keys.collection(collection), raw)
        return StoredJob(index=length - 1, raw=raw, job=job)

    async def replace(self, collection: Collection, entry: StoredJob, job: Job) -> StoredJob | None:
        """Swap ``entry`` for ``job`` in place; ``None`` when the slot moved on."""

        key = self.keys.collection(collection)
        raw = job.dumps()
        if await self._store.lcas(key, entry.index, entry.raw, raw):
            return StoredJob(index=entry.index, raw=raw, job=job)
        # The slot shifted; locate the record again by its raw value.
        for position, candidate in enumerate(await self._store.lrange(key, 0, -1)):
            if candidate == entry.raw and await self._store.lcas(key, position, entry.raw, raw):
                return StoredJob(index=position, raw=raw, job=job)
        return None

    async def remove(self, collection: Collection, entry: StoredJob) -> int:
        """Remove ``entry``, falling back to a lookup by job id."""

        key = self.keys.collection(collection)
        removed = await self._store.lrem(key, entry.raw, 1)
        if removed:
            return removed
        candidate = await self.find(collection, entry.job.id)
        if candidate is not None:
            removed += await self._store.lrem(key, candidate.raw, 1)
        return removed

    async def remove_raw(self, collection: Collection, raw: str) -> int:
        return await self._store.lrem(self.keys.collection(collection), raw, 1)

    async def rewrite(self, collection: Collection, jobs: list[str]) -> None:
        """Replace the whole collection with the given raw records."""

        key = self.keys.collection(collection)
        await self._store.delete(key)
        for raw in jobs:
            await self._store.rpush(key, raw)

    async def raw_entries(self, collection: Collection) -> list[str]:
        return await self._store.lrange(self.keys.collection(collection), 0, -1)

    async def write_marker(self, job: Job) -> None:
        await self._store.set(self.keys.marker(job.id), job.dumps(), ttl_s=self._marker_ttl_s)
        await self._store.lrem(self.keys.processing_index, job.id, 0)
        await self._store.rpush(self.keys.processing_index, job.id)

    async def read_marker(self, job_id: str) -> Job | None:
        raw = await self._store.get(self.keys.marker(job_id))
        if raw is None:
            return None
        try:
            return Job.loads(raw)
        except CorruptRecordError as exc:
            logger.warning(
                "Dropping corrupt processing marker for %s: %s",
                job_id,
                exc,
                extra={"event": "store.corrupt_record", "entity_id": job_id},
            )
            await self.clear_marker(job_id)
            return None

    async def clear_marker(self, job_id: str) -> None:
        await self._store.unset(self.keys.marker(job_id))
        await self._store.lrem(self.keys.processing_index, job_id, 0)

    async def marker_ids(self) -> list[str]:
        return await self._store.lrange(self.keys.processing_index, 0, -1)

    async def _drop_corrupt(self, key: str, raw: str, exc: CorruptRecordError) -> None:
        logger.warning(
            "Dropping corrupt record from %s: %s",
            key,
            exc,
            extra={"event": "store.corrupt_record", "key": key},
        )
        await self._store.lrem(key, raw, 1)


__all__ = ["Collection", "JobKeys", "JobStore", "StoredJob"]

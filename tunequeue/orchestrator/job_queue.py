"""Job admission and lifecycle bookkeeping on top of :class:`JobStore`."""

from __future__ import annotations

from collections.abc import Callable

from tunequeue.logging import get_logger
from tunequeue.models import Job, JobHandle, JobStatus
from tunequeue.orchestrator import events as orchestrator_events
from tunequeue.orchestrator.job_store import JobStore, StoredJob
from tunequeue.utils.time import now_ms


class JobQueue:
    """FIFO queue of fetch jobs with dedup, claim and archive transitions.

    The pending list holds both waiting and claimed (``processing``) jobs; a
    claimed job keeps its position and additionally owns a processing marker
    until it is committed, retried or released.
    """

    def __init__(
        self,
        job_store: JobStore,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._jobs = job_store
        self._clock = clock
        self._logger = get_logger(__name__)

    @property
    def job_store(self) -> JobStore:
        return self._jobs

    def now(self) -> int:
        return self._clock()

    async def enqueue(self, url: str) -> JobHandle:
        """Admit ``url``, reusing an active or completed job for it when present."""

        url = url.strip()
        if not url:
            raise ValueError("url must not be empty")

        active = await self._find_active(url)
        if active is not None:
            orchestrator_events.emit_enqueue_event(
                self._logger, job_id=active.id, url=url, status=active.status.value, existing=True
            )
            return JobHandle(job=active, existing=True)

        for entry in await self._jobs.scan("completed"):
            if entry.job.url == url and entry.job.status is JobStatus.DONE:
                orchestrator_events.emit_enqueue_event(
                    self._logger, job_id=entry.job.id, url=url, status="done", cached=True
                )
                return JobHandle(job=entry.job, cached=True)

        job = Job.new(url, now=self._clock())
        await self._jobs.append("pending", job)
        orchestrator_events.emit_enqueue_event(
            self._logger, job_id=job.id, url=url, status=job.status.value
        )
        return JobHandle(job=job)

    async def lookup_by_url(self, url: str) -> Job | None:
        """Return the job for ``url``: completed first, then processing, then pending."""

        url = url.strip()
        for entry in await self._jobs.scan("completed"):
            if entry.job.url == url:
                return entry.job
        pending = await self._jobs.scan("pending")
        for status in (JobStatus.PROCESSING, JobStatus.PENDING):
            for entry in pending:
                if entry.job.url == url and entry.job.status is status:
                    return entry.job
        return None

    async def get(self, job_id: str) -> Job | None:
        marker = await self._jobs.read_marker(job_id)
        if marker is not None:
            return marker
        for collection in ("pending", "completed", "failed"):
            for entry in await self._jobs.scan(collection):  # type: ignore[arg-type]
                if entry.job.id == job_id:
                    return entry.job
        return None

    async def peek_head(self) -> StoredJob | None:
        """Return the pending head without removing it.

        Raises :class:`~tunequeue.core.errors.CorruptRecordError` carrying the
        raw value when the head cannot be decoded.
        """

        return await self._jobs.peek("pending", 0)

    async def claim(self, entry: StoredJob) -> StoredJob | None:
        """Mark ``entry`` as processing; ``None`` when another writer won the slot."""

        claimed_job = entry.job.transition(JobStatus.PROCESSING, now=self._clock())
        claimed = await self._jobs.replace("pending", entry, claimed_job)
        if claimed is None:
            orchestrator_events.emit_claim_event(
                self._logger, job_id=entry.job.id, status="lost", attempt=entry.job.attempt
            )
            return None
        await self._jobs.write_marker(claimed_job)
        orchestrator_events.emit_claim_event(
            self._logger, job_id=claimed_job.id, status="claimed", attempt=claimed_job.attempt
        )
        return claimed

    async def reclaim_stale(self, entry: StoredJob, *, source: str = "tick") -> StoredJob | None:
        """Return a stale processing job to pending with one more attempt."""

        now = self._clock()
        stale_for = entry.job.age_ms(now)
        job = entry.job.transition(JobStatus.PENDING, now=now, attempt=entry.job.attempt + 1)
        reclaimed = await self._jobs.replace("pending", entry, job)
        await self._jobs.clear_marker(entry.job.id)
        if reclaimed is not None:
            orchestrator_events.emit_reclaim_event(
                self._logger,
                job_id=job.id,
                attempt=job.attempt,
                stale_for_ms=stale_for,
                source=source,
            )
        return reclaimed

    async def mark_retry(self, entry: StoredJob, *, error: str | None = None) -> StoredJob | None:
        """Put a failed attempt back to pending at its current position.

        When the slot was rewritten since the claim (a reclaim by another
        worker), the retry is applied to the current record of the same job
        without counting the attempt twice. ``None`` when the job left the
        pending list.
        """

        attempt = entry.job.attempt + 1
        job = entry.job.transition(JobStatus.PENDING, now=self._clock(), attempt=attempt, error=error)
        retried = await self._jobs.replace("pending", entry, job)
        if retried is None:
            current = await self._jobs.find("pending", entry.job.id)
            if current is not None:
                job = current.job.transition(
                    JobStatus.PENDING,
                    now=self._clock(),
                    attempt=max(attempt, current.job.attempt),
                    error=error,
                )
                retried = await self._jobs.replace("pending", current, job)
        await self._jobs.clear_marker(entry.job.id)
        return retried

    async def complete(self, entry: StoredJob, *, payload: str | None) -> Job:
        job = entry.job.transition(JobStatus.DONE, now=self._clock(), payload=payload, error=None)
        await self._archive(entry, job, "completed")
        return job

    async def fail(self, entry: StoredJob, *, error: str | None) -> Job:
        job = entry.job.transition(JobStatus.FAILED, now=self._clock(), error=error)
        await self._archive(entry, job, "failed")
        return job

    async def drop_head(self, raw: str) -> int:
        """Remove a head record that cannot be processed."""

        removed = await self._jobs.remove_raw("pending", raw)
        if removed:
            self._logger.warning(
                "Dropped unprocessable pending head",
                extra={"event": "queue.drop_head", "removed": removed},
            )
        return removed

    async def processing_entries(self) -> list[StoredJob]:
        return [
            entry
            for entry in await self._jobs.scan("pending")
            if entry.job.status is JobStatus.PROCESSING
        ]

    async def release_processing(self) -> int:
        """Return every claimed job to pending with its attempt unchanged."""

        released = 0
        for entry in await self.processing_entries():
            job = entry.job.transition(JobStatus.PENDING, now=self._clock())
            if await self._jobs.replace("pending", entry, job) is not None:
                released += 1
            await self._jobs.clear_marker(entry.job.id)
        for job_id in await self._jobs.marker_ids():
            await self._jobs.clear_marker(job_id)
        return released

    async def _find_active(self, url: str) -> Job | None:
        for entry in await self._jobs.scan("pending"):
            if entry.job.url == url and entry.job.status.is_active:
                return entry.job
        for job_id in await self._jobs.marker_ids():
            marker = await self._jobs.read_marker(job_id)
            if marker is not None and marker.url == url and marker.status.is_active:
                return marker
        return None

    async def _archive(self, entry: StoredJob, job: Job, collection: str) -> None:
        await self._jobs.remove("pending", entry)
        await self._jobs.append(collection, job)  # type: ignore[arg-type]
        await self._jobs.clear_marker(job.id)


__all__ = ["JobQueue"]

"""Maintenance passes: stale-claim recovery and archive retention."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import time

from tunequeue.config import DEFAULT_RETENTION_TTL_S, DEFAULT_STALE_AFTER_S
from tunequeue.core.errors import CorruptRecordError, StoreUnavailableError
from tunequeue.logging import get_logger
from tunequeue.models import Job, JobStatus
from tunequeue.orchestrator import events as orchestrator_events
from tunequeue.orchestrator.job_queue import JobQueue
from tunequeue.orchestrator.job_store import Collection, JobStore
from tunequeue.utils.time import now_ms

RECOVERY_COMPONENT = "orchestrator.recovery_sweep"
RETENTION_COMPONENT = "orchestrator.retention_sweep"


@dataclass(slots=True)
class SweepReport:
    status: str
    scanned: int = 0
    affected: int = 0
    dropped: int = 0
    duration_ms: int = 0


class RecoverySweep:
    """Reset stale processing claims anywhere in the pending list."""

    def __init__(
        self,
        queue: JobQueue,
        *,
        stale_after_ms: int = DEFAULT_STALE_AFTER_S * 1000,
        active_job_id: Callable[[], str | None] | None = None,
        time_source: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._queue = queue
        self._stale_after_ms = max(1, stale_after_ms)
        self._active_job_id = active_job_id
        self._time_source = time_source
        self._logger = get_logger(__name__)

    async def run_once(self) -> SweepReport:
        start = self._time_source()
        report = SweepReport(status="ok")
        try:
            await self._sweep(report)
        except StoreUnavailableError as exc:
            report.status = "error"
            report.duration_ms = self._elapsed(start)
            orchestrator_events.emit_sweep_event(
                self._logger,
                component=RECOVERY_COMPONENT,
                status="error",
                duration_ms=report.duration_ms,
                error=str(exc),
            )
            return report
        report.duration_ms = self._elapsed(start)
        orchestrator_events.emit_sweep_event(
            self._logger,
            component=RECOVERY_COMPONENT,
            status=report.status,
            duration_ms=report.duration_ms,
            scanned=report.scanned,
            affected=report.affected,
            dropped=report.dropped,
        )
        return report

    async def _sweep(self, report: SweepReport) -> None:
        job_store = self._queue.job_store
        entries = await job_store.scan("pending")
        report.scanned = len(entries)
        now = self._queue.now()
        active = self._active_job_id() if self._active_job_id is not None else None
        still_claimed: set[str] = set()
        for entry in entries:
            if entry.job.status is not JobStatus.PROCESSING:
                continue
            # A claim held by the local scheduler is never stale.
            if entry.job.id != active and entry.job.age_ms(now) > self._stale_after_ms:
                if await self._queue.reclaim_stale(entry, source="sweep") is not None:
                    report.affected += 1
            else:
                still_claimed.add(entry.job.id)

        for job_id in await job_store.marker_ids():
            if job_id in still_claimed or job_id == active:
                continue
            # Claimed after the scan above.
            marker = await job_store.read_marker(job_id)
            if marker is not None and marker.age_ms(self._queue.now()) <= self._stale_after_ms:
                pending_ids = {entry.job.id for entry in await job_store.scan("pending")}
                if job_id in pending_ids:
                    continue
            await job_store.clear_marker(job_id)
            report.dropped += 1

    def _elapsed(self, start: float) -> int:
        return int((self._time_source() - start) * 1000)


class RetentionSweep:
    """Drop archived jobs whose age reached the retention TTL."""

    collections: tuple[Collection, ...] = ("completed", "failed")

    def __init__(
        self,
        job_store: JobStore,
        *,
        ttl_ms: int = DEFAULT_RETENTION_TTL_S * 1000,
        clock: Callable[[], int] = now_ms,
        time_source: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._jobs = job_store
        self._ttl_ms = max(0, ttl_ms)
        self._clock = clock
        self._time_source = time_source
        self._logger = get_logger(__name__)

    def is_expired(self, job: Job, now: int) -> bool:
        return job.age_ms(now) >= self._ttl_ms

    async def run_once(self) -> SweepReport:
        start = self._time_source()
        report = SweepReport(status="ok")
        try:
            for collection in self.collections:
                await self._prune(collection, report)
        except StoreUnavailableError as exc:
            report.status = "error"
            report.duration_ms = int((self._time_source() - start) * 1000)
            orchestrator_events.emit_sweep_event(
                self._logger,
                component=RETENTION_COMPONENT,
                status="error",
                duration_ms=report.duration_ms,
                error=str(exc),
            )
            return report
        report.duration_ms = int((self._time_source() - start) * 1000)
        orchestrator_events.emit_sweep_event(
            self._logger,
            component=RETENTION_COMPONENT,
            status=report.status,
            duration_ms=report.duration_ms,
            scanned=report.scanned,
            affected=report.affected,
            dropped=report.dropped,
        )
        return report

    async def _prune(self, collection: Collection, report: SweepReport) -> None:
        raw_entries = await self._jobs.raw_entries(collection)
        if not raw_entries:
            return
        now = self._clock()
        retained: list[str] = []
        for raw in raw_entries:
            report.scanned += 1
            try:
                job = Job.loads(raw)
            except CorruptRecordError:
                report.dropped += 1
                continue
            if self.is_expired(job, now):
                report.affected += 1
            else:
                retained.append(raw)
        if len(retained) != len(raw_entries):
            await self._jobs.rewrite(collection, retained)


__all__ = [
    "RECOVERY_COMPONENT",
    "RETENTION_COMPONENT",
    "RecoverySweep",
    "RetentionSweep",
    "SweepReport",
]

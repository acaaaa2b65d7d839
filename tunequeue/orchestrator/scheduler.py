"""Worker loop claiming the pending head and executing it one job at a time."""

from __future__ import annotations

import asyncio
import contextlib
import time

from tunequeue.config import DEFAULT_MAX_ATTEMPTS, DEFAULT_STALE_AFTER_S, DEFAULT_TICK_MS
from tunequeue.core.errors import (
    CorruptRecordError,
    JobError,
    JobValidationError,
    StoreUnavailableError,
)
from tunequeue.logging import get_logger
from tunequeue.models import JobStatus, ProgressEvent, ProgressType
from tunequeue.orchestrator import events as orchestrator_events
from tunequeue.orchestrator.handlers import JobRunner, truncate_error
from tunequeue.orchestrator.job_queue import JobQueue
from tunequeue.orchestrator.job_store import StoredJob


class Scheduler:
    """Fixed-interval poller driving the pending queue.

    Each tick inspects the head of the pending list and either idles, waits
    for a fresh claim, reclaims a stale one, drops an unusable record or
    claims and runs the head job to completion.
    """

    def __init__(
        self,
        queue: JobQueue,
        runner: JobRunner,
        *,
        tick_interval_ms: int = DEFAULT_TICK_MS,
        stale_after_ms: int = DEFAULT_STALE_AFTER_S * 1000,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._queue = queue
        self._runner = runner
        self._tick_interval = max(0.0, tick_interval_ms / 1000.0)
        self._stale_after_ms = max(1, stale_after_ms)
        self._max_attempts = max(1, max_attempts)
        self._logger = get_logger(__name__)
        self._stop_signal: asyncio.Event | None = None
        self._pending_stop = False
        self.started: asyncio.Event = asyncio.Event()
        self.stopped: asyncio.Event = asyncio.Event()
        self.stop_requested: bool = False
        self._current_job_id: str | None = None

    @property
    def tick_interval(self) -> float:
        return self._tick_interval

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def current_job_id(self) -> str | None:
        """Id of the job being executed by this scheduler, if any."""

        return self._current_job_id

    def request_stop(self) -> None:
        self.stop_requested = True
        if self._stop_signal is not None:
            self._stop_signal.set()
        else:
            self._pending_stop = True

    async def run(self, lifespan: asyncio.Event | None = None) -> None:
        """Run ticks until a stop request or the lifespan event fires."""

        self._prepare_run_state()
        try:
            self.started.set()
            while not self._should_stop(lifespan):
                await self.tick()
                await self._sleep(lifespan)
        finally:
            if self._stop_signal is not None:
                self._stop_signal.set()
            if not self.stop_requested:
                self.stop_requested = True
            self.stopped.set()

    def _prepare_run_state(self) -> None:
        self.started = asyncio.Event()
        self.stopped = asyncio.Event()
        self._stop_signal = asyncio.Event()
        if self._pending_stop:
            self.stop_requested = True
            self._stop_signal.set()
            self._pending_stop = False
        else:
            self.stop_requested = False

    def _should_stop(self, lifespan: asyncio.Event | None) -> bool:
        if self._stop_signal is not None and self._stop_signal.is_set():
            return True
        if lifespan is not None and lifespan.is_set():
            return True
        return False

    async def tick(self) -> str:
        """Run one scheduling step and return what it did."""

        try:
            return await self._tick()
        except StoreUnavailableError as exc:
            self._logger.warning(
                "Store unavailable; skipping tick",
                extra={"event": "orchestrator.tick", "status": "unavailable", "error": str(exc)},
            )
            return "unavailable"

    async def _tick(self) -> str:
        try:
            head = await self._queue.peek_head()
        except CorruptRecordError as exc:
            if exc.raw is not None:
                await self._queue.drop_head(exc.raw)
            return "dropped"
        if head is None:
            return "idle"

        job = head.job
        if job.status is JobStatus.PROCESSING:
            if job.age_ms(self._queue.now()) > self._stale_after_ms:
                await self._queue.reclaim_stale(head, source="tick")
                return "reclaimed"
            return "busy"
        if job.status is not JobStatus.PENDING:
            await self._queue.drop_head(head.raw)
            return "dropped"

        claimed = await self._queue.claim(head)
        if claimed is None:
            return "lost"
        self._current_job_id = claimed.job.id
        try:
            return await self._execute(claimed)
        finally:
            self._current_job_id = None

    async def _execute(self, entry: StoredJob) -> str:
        job = entry.job
        kind = self._runner.kind_of(job)
        start = time.perf_counter()
        try:
            result = await self._runner.run(job)
        except StoreUnavailableError:
            raise
        except JobValidationError as exc:
            return await self._fail(entry, exc, start, kind, event_type=ProgressType.ERROR)
        except Exception as exc:
            if job.attempt + 1 >= self._max_attempts:
                return await self._fail(entry, exc, start, kind, event_type=ProgressType.FAILED)
            return await self._retry(entry, exc, start, kind)

        done = await self._queue.complete(entry, payload=result.payload)
        orchestrator_events.emit_commit_event(
            self._logger,
            job_id=done.id,
            status="done",
            attempt=done.attempt,
            duration_ms=self._elapsed_ms(start),
            kind=kind,
        )
        await self._runner.progress.publish(
            done.id,
            ProgressEvent(
                job_id=done.id,
                status=JobStatus.DONE,
                type=ProgressType.COMPLETED,
                message="Download completed",
                progress=100,
                total=len(result.outcomes),
                current=len(result.outcomes),
                payload=done.payload,
            ),
        )
        return "done"

    async def _retry(self, entry: StoredJob, exc: Exception, start: float, kind: str | None) -> str:
        error = self._describe(exc)
        retried = await self._queue.mark_retry(entry, error=error)
        status = "retry" if retried is not None else "lost"
        orchestrator_events.emit_commit_event(
            self._logger,
            job_id=entry.job.id,
            status=status,
            attempt=retried.job.attempt if retried is not None else entry.job.attempt + 1,
            duration_ms=self._elapsed_ms(start),
            kind=kind,
            stop_reason=getattr(exc, "stop_reason", None),
            error=error,
        )
        return status

    async def _fail(
        self,
        entry: StoredJob,
        exc: Exception,
        start: float,
        kind: str | None,
        *,
        event_type: ProgressType,
    ) -> str:
        error = self._describe(exc)
        failed = await self._queue.fail(entry, error=error)
        stop_reason = exc.stop_reason if isinstance(exc, JobError) else None
        if event_type is ProgressType.FAILED and stop_reason is None:
            stop_reason = "max_attempts_exhausted"
        orchestrator_events.emit_commit_event(
            self._logger,
            job_id=failed.id,
            status="failed",
            attempt=failed.attempt,
            duration_ms=self._elapsed_ms(start),
            kind=kind,
            stop_reason=stop_reason,
            error=error,
        )
        await self._runner.progress.publish(
            failed.id,
            ProgressEvent(
                job_id=failed.id,
                status=JobStatus.FAILED,
                type=event_type,
                message=f"Download failed: {error}",
                error=error,
            ),
        )
        return "failed"

    @staticmethod
    def _describe(exc: BaseException) -> str:
        return truncate_error(str(exc) or exc.__class__.__name__)

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int((time.perf_counter() - start) * 1000)

    async def _sleep(self, lifespan: asyncio.Event | None) -> None:
        timeout = self._tick_interval
        if timeout <= 0:
            await asyncio.sleep(0)
            return

        waiters: list[asyncio.Task[bool]] = []
        if lifespan is not None:
            waiters.append(asyncio.create_task(lifespan.wait()))
        if self._stop_signal is not None:
            waiters.append(asyncio.create_task(self._stop_signal.wait()))
        try:
            if waiters:
                await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
            else:
                await asyncio.sleep(timeout)
        finally:
            for task in waiters:
                if not task.done():
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task


__all__ = ["Scheduler"]

"""Bootstrap helpers wiring the worker runtime and its graceful shutdown."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import contextlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from tunequeue.config import AppConfig
from tunequeue.core.errors import StoreUnavailableError
from tunequeue.integrations.contracts import MetadataProvider, TrackFetcher
from tunequeue.logging import get_logger
from tunequeue.orchestrator import events as orchestrator_events
from tunequeue.orchestrator.handlers import JobHandlerDeps, JobRunner
from tunequeue.orchestrator.job_queue import JobQueue
from tunequeue.orchestrator.job_store import JobKeys, JobStore
from tunequeue.orchestrator.progress import ProgressBus
from tunequeue.orchestrator.scheduler import Scheduler
from tunequeue.orchestrator.sweeps import RecoverySweep, RetentionSweep
from tunequeue.orchestrator.timer import PeriodicTimer
from tunequeue.store.base import StoreBackend
from tunequeue.store.factory import build_store
from tunequeue.utils.time import now_ms

logger = get_logger(__name__)


@dataclass(slots=True)
class QueueServices:
    """Store-backed services shared by the API and the worker."""

    store: StoreBackend
    job_store: JobStore
    queue: JobQueue
    progress: ProgressBus


def build_queue_services(
    config: AppConfig,
    *,
    store: StoreBackend | None = None,
    clock: Callable[[], int] = now_ms,
) -> QueueServices:
    resolved_store = store if store is not None else build_store(config.store)
    keys = JobKeys(prefix=config.store.key_prefix)
    job_store = JobStore(resolved_store, keys=keys)
    return QueueServices(
        store=resolved_store,
        job_store=job_store,
        queue=JobQueue(job_store, clock=clock),
        progress=ProgressBus(
            resolved_store,
            keys=keys,
            heartbeat_s=config.progress.heartbeat_s,
            close_grace_s=config.progress.close_grace,
        ),
    )


@dataclass(slots=True)
class WorkerRuntime:
    """Container bundling the scheduler, the sweeps and their store handle."""

    services: QueueServices
    scheduler: Scheduler
    recovery_timer: PeriodicTimer
    retention_timer: PeriodicTimer
    owns_store: bool = True
    _scheduler_task: Optional[asyncio.Task[None]] = field(default=None, init=False)
    _shutdown_lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)
    _shutdown_done: bool = field(default=False, init=False)

    @property
    def queue(self) -> JobQueue:
        return self.services.queue

    @property
    def store(self) -> StoreBackend:
        return self.services.store

    @property
    def tasks(self) -> list[asyncio.Task[None]]:
        candidates = [
            self._scheduler_task,
            self.recovery_timer.task,
            self.retention_timer.task,
        ]
        return [task for task in candidates if task is not None]

    async def start(self) -> None:
        """Verify the store connection and start the scheduler and sweeps."""

        try:
            await self.services.store.ping()
        except StoreUnavailableError as exc:
            logger.warning(
                "Store not reachable at startup; ticks will retry",
                extra={"event": "worker.startup", "status": "degraded", "error": str(exc)},
            )
        else:
            logger.info(
                "Store connection established",
                extra={"event": "worker.startup", "status": "ok", "backend": self.store.name},
            )
        await self.retention_timer.start()
        await self.recovery_timer.start()
        self._scheduler_task = asyncio.create_task(self.scheduler.run(), name="scheduler")

    async def wait_for_fault(self) -> BaseException | None:
        """Return the first exception raised by a runtime task, if any ends."""

        tasks = self.tasks
        if not tasks:
            return None
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if task.cancelled():
                continue
            error = task.exception()
            if error is not None:
                return error
        return None

    async def shutdown(self, reason: str) -> int:
        """Stop all tasks, release claimed jobs and close the store. Idempotent."""

        async with self._shutdown_lock:
            if self._shutdown_done:
                return 0
            self._shutdown_done = True
            orchestrator_events.emit_shutdown_event(logger, status="started", reason=reason)

            self.scheduler.request_stop()
            task = self._scheduler_task
            self._scheduler_task = None
            if task is not None and not task.done():
                task.cancel()
            if task is not None:
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await task
            await self.recovery_timer.stop()
            await self.retention_timer.stop()

            released = 0
            error: str | None = None
            try:
                released = await self.services.queue.release_processing()
            except StoreUnavailableError as exc:
                error = str(exc)
                logger.error("Failed to release processing jobs during shutdown: %s", exc)
            if self.owns_store:
                await self.services.store.close()
            orchestrator_events.emit_shutdown_event(
                logger,
                status="completed" if error is None else "error",
                released=released,
                reason=reason,
                error=error,
            )
            return released


def bootstrap_worker(
    config: AppConfig,
    *,
    services: QueueServices | None = None,
    metadata: MetadataProvider | None = None,
    fetcher: TrackFetcher | None = None,
    owns_store: bool = True,
) -> WorkerRuntime:
    """Initialise the worker runtime with its collaborators."""

    resolved = services or build_queue_services(config)
    if metadata is None:
        from tunequeue.integrations.spotify_metadata import SpotifyMetadataProvider

        metadata = SpotifyMetadataProvider(config.spotify)
    if fetcher is None:
        from tunequeue.integrations.ytdlp_fetcher import YtDlpTrackFetcher

        fetcher = YtDlpTrackFetcher(config.fetcher)

    runner = JobRunner(
        JobHandlerDeps(
            metadata=metadata,
            fetcher=fetcher,
            progress=resolved.progress,
            downloads_root=Path(config.fetcher.downloads_dir),
        )
    )
    queue_cfg = config.queue
    scheduler = Scheduler(
        resolved.queue,
        runner,
        tick_interval_ms=queue_cfg.tick_interval_ms,
        stale_after_ms=queue_cfg.stale_after_ms,
        max_attempts=queue_cfg.max_attempts,
    )
    recovery = RecoverySweep(
        resolved.queue,
        stale_after_ms=queue_cfg.stale_after_ms,
        active_job_id=lambda: scheduler.current_job_id,
    )
    retention = RetentionSweep(
        resolved.job_store, ttl_ms=queue_cfg.retention_ttl_ms, clock=resolved.queue.now
    )
    return WorkerRuntime(
        services=resolved,
        scheduler=scheduler,
        recovery_timer=PeriodicTimer(
            "recovery-sweep",
            recovery.run_once,
            interval_seconds=queue_cfg.recovery_interval_s,
        ),
        retention_timer=PeriodicTimer(
            "retention-sweep",
            retention.run_once,
            interval_seconds=queue_cfg.retention_interval_s,
            run_on_start=True,
        ),
        owns_store=owns_store,
    )


__all__ = [
    "QueueServices",
    "WorkerRuntime",
    "bootstrap_worker",
    "build_queue_services",
]

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from tunequeue.config import AppConfig
from tunequeue.models import JobStatus
from tunequeue.orchestrator.bootstrap import QueueServices, WorkerRuntime, bootstrap_worker
from tunequeue.store.memory import MemoryStore
from tunequeue.worker import run_worker

from tests.support.stubs import TRACK_URL, RecordingFetcher, StubMetadata, settle, track_item


def _runtime(config: AppConfig, services: QueueServices, *, owns_store: bool = True) -> WorkerRuntime:
    return bootstrap_worker(
        config,
        services=services,
        metadata=StubMetadata({TRACK_URL: track_item()}),
        fetcher=RecordingFetcher(),
        owns_store=owns_store,
    )


@pytest.mark.asyncio
async def test_runtime_processes_queued_jobs(
    config: AppConfig, services: QueueServices, downloads_root: Path
) -> None:
    handle = await services.queue.enqueue(TRACK_URL)
    runtime = _runtime(config, services)

    await runtime.start()
    for _ in range(50):
        if await services.job_store.scan("completed"):
            break
        await settle()
    await runtime.shutdown("test")

    completed = await services.job_store.scan("completed")
    assert [entry.job.id for entry in completed] == [handle.id]
    assert (downloads_root / "track" / "Song - Artist").is_dir()


@pytest.mark.asyncio
async def test_shutdown_releases_claims_and_closes_owned_store(
    config: AppConfig, services: QueueServices, store: MemoryStore
) -> None:
    runtime = _runtime(config, services)
    await runtime.start()
    await settle()

    await services.queue.enqueue(TRACK_URL)
    await services.queue.claim(await services.queue.peek_head())

    released = await runtime.shutdown("SIGTERM")

    assert released == 1
    assert store.closed
    assert runtime.tasks == []
    assert await runtime.shutdown("SIGTERM") == 0


@pytest.mark.asyncio
async def test_shutdown_leaves_shared_store_open(
    config: AppConfig, services: QueueServices, store: MemoryStore
) -> None:
    runtime = _runtime(config, services, owns_store=False)
    await runtime.start()
    await settle()
    await services.queue.enqueue(TRACK_URL)
    await services.queue.claim(await services.queue.peek_head())

    await runtime.shutdown("api_shutdown")

    assert not store.closed
    head = await services.queue.peek_head()
    assert head.job.status is JobStatus.PENDING
    assert head.job.attempt == 0
    assert await services.job_store.marker_ids() == []


@pytest.mark.asyncio
async def test_run_worker_stops_on_request(config: AppConfig, services: QueueServices) -> None:
    runtime = _runtime(config, services)
    stop_event = asyncio.Event()
    asyncio.get_running_loop().call_later(0.05, stop_event.set)

    released = await asyncio.wait_for(
        run_worker(config, runtime=runtime, stop_event=stop_event, install_signal_handlers=False),
        timeout=5.0,
    )

    assert released == 0
    assert services.store.closed


@pytest.mark.asyncio
async def test_run_worker_shuts_down_after_a_task_fault(
    config: AppConfig, services: QueueServices
) -> None:
    runtime = _runtime(config, services)

    async def _crash() -> str:
        raise RuntimeError("scheduler exploded")

    runtime.scheduler.tick = _crash  # type: ignore[method-assign]

    released = await asyncio.wait_for(
        run_worker(config, runtime=runtime, stop_event=asyncio.Event(), install_signal_handlers=False),
        timeout=5.0,
    )

    assert released == 0
    assert services.store.closed

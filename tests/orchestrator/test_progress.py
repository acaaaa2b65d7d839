from __future__ import annotations

import asyncio
import json
import time

import pytest

from tunequeue.models import Job, JobStatus, ProgressEvent, ProgressType
from tunequeue.orchestrator.job_store import JobKeys
from tunequeue.orchestrator.progress import (
    HEARTBEAT_FRAME,
    ProgressBus,
    fallback_frame,
    handshake_frame,
    snapshot_event,
)
from tunequeue.store.memory import MemoryStore


def _event(job_id: str, status: JobStatus, event_type: ProgressType) -> ProgressEvent:
    return ProgressEvent(job_id=job_id, status=status, type=event_type, message=event_type.value)


def _payload(frame: str) -> dict:
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    return json.loads(frame[len("data: ") : -2])


def _bus(store: MemoryStore, *, heartbeat_s: float = 5.0, close_grace_s: float = 0.05) -> ProgressBus:
    return ProgressBus(
        store, keys=JobKeys("test"), heartbeat_s=heartbeat_s, close_grace_s=close_grace_s
    )


@pytest.mark.asyncio
async def test_publish_without_subscribers_is_not_replayed() -> None:
    store = MemoryStore()
    bus = _bus(store)

    assert await bus.publish("j1", _event("j1", JobStatus.PROCESSING, ProgressType.STARTED)) == 0

    subscription = await bus.subscribe("j1")
    assert await subscription.next_event(0.02) is None

    await bus.publish("j1", _event("j1", JobStatus.PROCESSING, ProgressType.DOWNLOADING))
    event = await subscription.next_event(0.1)
    assert event["type"] == "downloading"
    assert await subscription.close() is True
    assert await subscription.close() is False


@pytest.mark.asyncio
async def test_publish_failures_are_swallowed() -> None:
    store = MemoryStore()
    bus = _bus(store)
    await store.close()

    assert await bus.publish("j1", _event("j1", JobStatus.DONE, ProgressType.COMPLETED)) == 0


@pytest.mark.asyncio
async def test_stream_forwards_events_and_closes_within_grace() -> None:
    store = MemoryStore()
    bus = _bus(store, close_grace_s=0.05)
    subscription = await bus.subscribe("j1")

    async def collect() -> list[str]:
        return [frame async for frame in bus.progress_stream("j1", subscription)]

    task = asyncio.create_task(collect())
    await asyncio.sleep(0.01)
    await bus.publish("j1", _event("j1", JobStatus.PROCESSING, ProgressType.DOWNLOADING))
    await bus.publish("j1", _event("j1", JobStatus.DONE, ProgressType.COMPLETED))
    started = time.monotonic()
    frames = await asyncio.wait_for(task, timeout=2.0)
    elapsed = time.monotonic() - started

    assert frames[0] == handshake_frame("j1")
    assert [_payload(frame)["type"] for frame in frames[1:]] == ["downloading", "completed"]
    assert elapsed < 0.5
    assert subscription.closed
    assert store.subscriber_count(bus.channel("j1")) == 0


@pytest.mark.asyncio
async def test_stream_with_terminal_snapshot_closes_immediately() -> None:
    store = MemoryStore()
    bus = _bus(store)
    job = Job.new("u", now=1).transition(JobStatus.DONE, now=2, payload="Song - Artist")
    subscription = await bus.subscribe(job.id)

    frames = [
        frame
        async for frame in bus.progress_stream(
            job.id, subscription, initial_event=snapshot_event(job)
        )
    ]

    assert len(frames) == 2
    snapshot = _payload(frames[1])
    assert snapshot["status"] == "done"
    assert snapshot["type"] == "completed"
    assert snapshot["payload"] == "Song - Artist"
    assert subscription.closed


@pytest.mark.asyncio
async def test_stream_sends_heartbeats_while_idle() -> None:
    store = MemoryStore()
    bus = _bus(store, heartbeat_s=0.05)
    subscription = await bus.subscribe("j1")
    stream = bus.progress_stream("j1", subscription)

    assert await stream.__anext__() == handshake_frame("j1")
    assert await asyncio.wait_for(stream.__anext__(), timeout=1.0) == HEARTBEAT_FRAME

    await stream.aclose()
    assert subscription.closed


@pytest.mark.asyncio
async def test_stream_falls_back_to_polling_on_transport_loss() -> None:
    store = MemoryStore()
    bus = _bus(store)
    subscription = await bus.subscribe("j1")
    stream = bus.progress_stream("j1", subscription)
    assert await stream.__anext__() == handshake_frame("j1")

    await store.close()

    assert await asyncio.wait_for(stream.__anext__(), timeout=1.0) == fallback_frame("j1")
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()


@pytest.mark.asyncio
async def test_stream_ends_when_the_client_disconnects() -> None:
    store = MemoryStore()
    bus = _bus(store)
    subscription = await bus.subscribe("j1")
    checks: list[int] = []

    async def is_disconnected() -> bool:
        checks.append(1)
        return True

    frames = [
        frame
        async for frame in bus.progress_stream("j1", subscription, is_disconnected=is_disconnected)
    ]

    assert frames == [handshake_frame("j1")]
    assert checks
    assert store.subscriber_count(bus.channel("j1")) == 0


def test_snapshot_of_failed_job_carries_the_error() -> None:
    job = Job.new("u", now=1).transition(JobStatus.FAILED, now=2, error="no match")

    event = snapshot_event(job)

    assert event.is_terminal
    assert event.type is ProgressType.FAILED
    assert event.to_dict()["error"] == "no match"

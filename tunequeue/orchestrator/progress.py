"""Progress broadcast for running jobs and the SSE frames built on top of it."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
import time
from typing import Any

from tunequeue.config import DEFAULT_CLOSE_GRACE_MS, DEFAULT_HEARTBEAT_S
from tunequeue.core.errors import StoreUnavailableError
from tunequeue.logging import get_logger
from tunequeue.models import Job, JobStatus, ProgressEvent, ProgressType
from tunequeue.orchestrator import events as orchestrator_events
from tunequeue.orchestrator.job_store import JobKeys
from tunequeue.store.base import StoreBackend, Subscription
from tunequeue.utils.jsonx import compact_dumps, try_parse_json_or_none

logger = get_logger(__name__)

HEARTBEAT_FRAME = ": heartbeat\n\n"
_DISCONNECT_POLL_S = 1.0
_TERMINAL_STATUSES = frozenset({JobStatus.DONE.value, JobStatus.FAILED.value})


def sse_frame(payload: dict[str, Any] | str) -> str:
    data = payload if isinstance(payload, str) else compact_dumps(payload)
    return f"data: {data}\n\n"


def handshake_frame(job_id: str) -> str:
    return sse_frame({"type": "connected", "jobId": job_id})


def fallback_frame(job_id: str) -> str:
    return sse_frame({"type": "fallback", "strategy": "polling", "jobId": job_id})


def snapshot_event(job: Job) -> ProgressEvent:
    """Describe an already finished job as its terminal progress event."""

    if job.status is JobStatus.DONE:
        return ProgressEvent(
            job_id=job.id,
            status=JobStatus.DONE,
            type=ProgressType.COMPLETED,
            message="Download completed",
            progress=100,
            payload=job.payload,
        )
    return ProgressEvent(
        job_id=job.id,
        status=JobStatus.FAILED,
        type=ProgressType.FAILED,
        message="Download failed",
        error=job.error,
    )


class ProgressSubscription:
    """Live view on the progress channel of one job."""

    def __init__(self, job_id: str, subscription: Subscription) -> None:
        self.job_id = job_id
        self._subscription = subscription
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def next_message(self, timeout: float) -> str | None:
        """Return the next raw JSON event or ``None`` after ``timeout`` seconds."""

        if self._closed:
            return None
        return await self._subscription.get_message(timeout)

    async def next_event(self, timeout: float) -> dict[str, Any] | None:
        message = await self.next_message(timeout)
        if message is None:
            return None
        data = try_parse_json_or_none(message)
        return data if isinstance(data, dict) else None

    async def close(self) -> bool:
        """Detach from the channel. Returns ``False`` when already closed."""

        if self._closed:
            return False
        self._closed = True
        try:
            await self._subscription.close()
        except StoreUnavailableError as exc:
            logger.debug("Ignoring subscription close failure for %s: %s", self.job_id, exc)
        return True

    async def __aenter__(self) -> ProgressSubscription:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


class ProgressBus:
    """Fire-and-forget publish/subscribe of :class:`ProgressEvent` per job."""

    def __init__(
        self,
        store: StoreBackend,
        *,
        keys: JobKeys | None = None,
        heartbeat_s: float = DEFAULT_HEARTBEAT_S,
        close_grace_s: float = DEFAULT_CLOSE_GRACE_MS / 1000.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._keys = keys or JobKeys()
        self._heartbeat_s = max(0.01, float(heartbeat_s))
        self._close_grace_s = max(0.0, float(close_grace_s))
        self._clock = clock

    def channel(self, job_id: str) -> str:
        return self._keys.progress_channel(job_id)

    async def publish(self, job_id: str, event: ProgressEvent) -> int:
        """Broadcast ``event``; transport failures are logged and reported as 0."""

        try:
            receivers = await self._store.publish(self.channel(job_id), event.dumps())
        except StoreUnavailableError as exc:
            orchestrator_events.emit_publish_event(
                logger,
                job_id=job_id,
                event_type=event.type.value,
                status=event.status.value,
                error=str(exc),
            )
            return 0
        orchestrator_events.emit_publish_event(
            logger,
            job_id=job_id,
            event_type=event.type.value,
            status=event.status.value,
            receivers=receivers,
        )
        return receivers

    async def subscribe(self, job_id: str) -> ProgressSubscription:
        """Attach to the job channel; raises :class:`StoreUnavailableError`."""

        subscription = await self._store.subscribe(self.channel(job_id))
        return ProgressSubscription(job_id, subscription)

    async def progress_stream(
        self,
        job_id: str,
        subscription: ProgressSubscription,
        *,
        initial_event: ProgressEvent | None = None,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> AsyncIterator[str]:
        """Yield SSE frames for ``job_id`` until the stream has a reason to end.

        The stream closes shortly after a terminal event, on transport loss
        (after a polling fallback frame), on client disconnect and when the
        consumer stops iterating.
        """

        forwarded = 0
        reason = "cancelled"
        orchestrator_events.emit_stream_event(logger, job_id=job_id, status="open")
        try:
            yield handshake_frame(job_id)
            if initial_event is not None:
                yield sse_frame(initial_event.to_dict())
                forwarded += 1
                if initial_event.is_terminal:
                    reason = "finished"
                    return

            close_at: float | None = None
            last_frame = self._clock()
            while True:
                if is_disconnected is not None and await is_disconnected():
                    reason = "client_disconnected"
                    return
                now = self._clock()
                if close_at is not None:
                    wait = close_at - now
                    if wait <= 0:
                        reason = "terminal"
                        return
                else:
                    wait = self._heartbeat_s - (now - last_frame)
                    if wait <= 0:
                        yield HEARTBEAT_FRAME
                        last_frame = self._clock()
                        continue
                try:
                    message = await subscription.next_message(min(wait, _DISCONNECT_POLL_S))
                except StoreUnavailableError:
                    yield fallback_frame(job_id)
                    reason = "transport_error"
                    return
                if message is None:
                    continue
                data = try_parse_json_or_none(message)
                if not isinstance(data, dict):
                    continue
                yield sse_frame(message)
                forwarded += 1
                last_frame = self._clock()
                if close_at is None and data.get("status") in _TERMINAL_STATUSES:
                    close_at = last_frame + self._close_grace_s
        finally:
            if await subscription.close():
                orchestrator_events.emit_stream_event(
                    logger, job_id=job_id, status="closed", reason=reason, forwarded=forwarded
                )


__all__ = [
    "HEARTBEAT_FRAME",
    "ProgressBus",
    "ProgressSubscription",
    "fallback_frame",
    "handshake_frame",
    "snapshot_event",
    "sse_frame",
]

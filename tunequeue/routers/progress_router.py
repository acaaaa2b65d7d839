"""Server-sent progress stream for a single job."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from tunequeue.core.errors import StoreUnavailableError
from tunequeue.dependencies import get_job_queue, get_progress_bus
from tunequeue.logging import get_logger
from tunequeue.models import ProgressEvent
from tunequeue.orchestrator.job_queue import JobQueue
from tunequeue.orchestrator.progress import ProgressBus, snapshot_event

router = APIRouter(tags=["Progress"])
logger = get_logger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _fallback_response(job_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"fallback": "polling", "jobId": job_id},
    )


@router.get("/progress/{job_id}")
async def stream_progress(
    job_id: str,
    request: Request,
    bus: ProgressBus = Depends(get_progress_bus),
    queue: JobQueue = Depends(get_job_queue),
):
    try:
        subscription = await bus.subscribe(job_id)
    except StoreUnavailableError as exc:
        logger.warning("Progress stream unavailable for %s: %s", job_id, exc)
        return _fallback_response(job_id)

    # Subscription precedes the snapshot read; no terminal event falls between them.
    initial: ProgressEvent | None = None
    try:
        job = await queue.get(job_id)
    except StoreUnavailableError:
        job = None
    if job is not None and job.status.is_terminal:
        initial = snapshot_event(job)

    stream = bus.progress_stream(
        job_id,
        subscription,
        initial_event=initial,
        is_disconnected=request.is_disconnected,
    )
    return StreamingResponse(stream, media_type="text/event-stream", headers=SSE_HEADERS)


__all__ = ["SSE_HEADERS", "router"]

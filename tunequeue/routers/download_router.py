"""Job submission and lookup endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from tunequeue.dependencies import get_job_queue
from tunequeue.errors import ValidationAppError
from tunequeue.logging import get_logger
from tunequeue.logging_events import log_event
from tunequeue.orchestrator.job_queue import JobQueue
from tunequeue.schemas import DownloadRequest, DownloadResponse, JobLookupResponse, JobOut

router = APIRouter(tags=["Download"])
logger = get_logger(__name__)


def _require_url(raw: str | None) -> str:
    url = (raw or "").strip()
    if not url:
        raise ValidationAppError("URL is required", meta={"fields": [{"name": "url"}]})
    return url


@router.post("/download", response_model=DownloadResponse)
async def submit_download(
    payload: DownloadRequest,
    queue: JobQueue = Depends(get_job_queue),
) -> DownloadResponse:
    url = _require_url(payload.url)
    handle = await queue.enqueue(url)
    if handle.cached:
        message = "Job already completed"
    elif handle.existing:
        message = "Job already queued"
    else:
        message = "Job added to the queue"
    log_event(
        logger,
        "api.download.submit",
        job_id=handle.id,
        status=handle.status.value,
        existing=handle.existing,
        cached=handle.cached,
    )
    return DownloadResponse(
        message=message,
        job=JobOut.from_job(handle.job),
        existing=handle.existing,
        cached=handle.cached,
    )


@router.get("/download", response_model=JobLookupResponse)
async def lookup_download(
    url: str | None = Query(None),
    queue: JobQueue = Depends(get_job_queue),
) -> JobLookupResponse:
    job = await queue.lookup_by_url(_require_url(url))
    if job is None:
        return JobLookupResponse(message="Job not found", job=None)
    return JobLookupResponse(message="Job retrieved", job=JobOut.from_job(job))


__all__ = ["router"]

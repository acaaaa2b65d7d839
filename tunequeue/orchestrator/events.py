"""Structured logging helpers for orchestrator components."""

from __future__ import annotations

import logging
from typing import Any

from tunequeue.logging_events import log_event


def emit_enqueue_event(
    logger: Any,
    *,
    job_id: str,
    url: str,
    status: str,
    existing: bool = False,
    cached: bool = False,
) -> None:
    payload: dict[str, Any] = {
        "entity_id": job_id,
        "url": url,
        "status": status,
        "existing": existing,
        "cached": cached,
    }
    _emit_event(logger, "queue.enqueue", payload)


def emit_claim_event(
    logger: Any,
    *,
    job_id: str,
    status: str,
    attempt: int,
    kind: str | None = None,
) -> None:
    payload: dict[str, Any] = {
        "entity_id": job_id,
        "status": status,
        "attempt": attempt,
    }
    if kind:
        payload["job_type"] = kind
    _emit_event(logger, "orchestrator.claim", payload)


def emit_commit_event(
    logger: Any,
    *,
    job_id: str,
    status: str,
    attempt: int,
    duration_ms: int,
    kind: str | None = None,
    stop_reason: str | None = None,
    error: str | None = None,
) -> None:
    payload: dict[str, Any] = {
        "entity_id": job_id,
        "status": status,
        "attempt": attempt,
        "duration_ms": duration_ms,
    }
    if kind:
        payload["job_type"] = kind
    if stop_reason:
        payload["stop_reason"] = stop_reason
    if error:
        payload["error"] = error
    level = logging.WARNING if status in {"retry", "failed", "lost"} else logging.INFO
    _emit_event(logger, "orchestrator.commit", payload, level=level)


def emit_reclaim_event(
    logger: Any,
    *,
    job_id: str,
    attempt: int,
    stale_for_ms: int,
    source: str,
) -> None:
    payload = {
        "entity_id": job_id,
        "status": "reclaimed",
        "attempt": attempt,
        "stale_for_ms": stale_for_ms,
        "source": source,
    }
    _emit_event(logger, "orchestrator.reclaim", payload, level=logging.WARNING)


def emit_sweep_event(
    logger: Any,
    *,
    component: str,
    status: str,
    duration_ms: int,
    scanned: int = 0,
    affected: int = 0,
    dropped: int = 0,
    error: str | None = None,
) -> None:
    payload: dict[str, Any] = {
        "component": component,
        "status": status,
        "duration_ms": duration_ms,
        "scanned": scanned,
        "affected": affected,
        "dropped": dropped,
    }
    if error:
        payload["error"] = error
    level = logging.WARNING if status == "error" else logging.INFO
    _emit_event(logger, "orchestrator.sweep", payload, level=level)


def emit_publish_event(
    logger: Any,
    *,
    job_id: str,
    event_type: str,
    status: str,
    receivers: int | None = None,
    error: str | None = None,
) -> None:
    payload: dict[str, Any] = {
        "entity_id": job_id,
        "event_type": event_type,
        "status": status,
    }
    if receivers is not None:
        payload["receivers"] = receivers
    if error:
        payload["error"] = error
    level = logging.WARNING if error else logging.DEBUG
    _emit_event(logger, "progress.publish", payload, level=level)


def emit_stream_event(
    logger: Any,
    *,
    job_id: str,
    status: str,
    reason: str | None = None,
    forwarded: int | None = None,
) -> None:
    payload: dict[str, Any] = {"entity_id": job_id, "status": status}
    if reason:
        payload["reason"] = reason
    if forwarded is not None:
        payload["forwarded"] = forwarded
    _emit_event(logger, "progress.stream", payload)


def emit_shutdown_event(
    logger: Any,
    *,
    status: str,
    released: int = 0,
    reason: str | None = None,
    error: str | None = None,
) -> None:
    payload: dict[str, Any] = {"status": status, "released": released}
    if reason:
        payload["reason"] = reason
    if error:
        payload["error"] = error
    _emit_event(logger, "worker.shutdown", payload)


def _emit_event(
    logger: Any,
    event: str,
    payload: dict[str, Any],
    *,
    level: int = logging.INFO,
) -> None:
    log_event(logger, event, level=level, **payload)


__all__ = [
    "emit_claim_event",
    "emit_commit_event",
    "emit_enqueue_event",
    "emit_publish_event",
    "emit_reclaim_event",
    "emit_shutdown_event",
    "emit_stream_event",
    "emit_sweep_event",
]

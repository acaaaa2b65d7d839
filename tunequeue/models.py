"""Data models for queued jobs and progress notifications."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
import secrets
from typing import Any, Mapping

from tunequeue.core.errors import CorruptRecordError
from tunequeue.utils.jsonx import compact_dumps, try_parse_json_or_none
from tunequeue.utils.time import now_ms

JOB_SCHEMA_VERSION = 1


class JobStatus(str, Enum):
    """Lifecycle states of a queued job."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.PROCESSING)

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.FAILED)


class ProgressType(str, Enum):
    """Kinds of progress checkpoints published while a job runs."""

    STARTED = "started"
    DOWNLOADING = "downloading"
    DOWNLOADED = "downloaded"
    SKIPPED = "skipped"
    TRACK_FAILED = "track_failed"
    INFO = "info"
    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"


def new_job_id() -> str:
    return secrets.token_hex(16)


@dataclass(slots=True, frozen=True)
class Job:
    """A unit of work: fetch the media behind one catalog URL."""

    id: str
    url: str
    status: JobStatus
    attempt: int
    created_at: int
    updated_at: int
    payload: str | None = None
    error: str | None = None
    schema_version: int = JOB_SCHEMA_VERSION

    @classmethod
    def new(cls, url: str, *, now: int | None = None) -> Job:
        timestamp = now if now is not None else now_ms()
        return cls(
            id=new_job_id(),
            url=url,
            status=JobStatus.PENDING,
            attempt=0,
            created_at=timestamp,
            updated_at=timestamp,
        )

    def transition(self, status: JobStatus, *, now: int | None = None, **changes: Any) -> Job:
        """Return a copy with ``status`` applied and ``updated_at`` refreshed."""

        timestamp = now if now is not None else now_ms()
        return replace(self, status=status, updated_at=timestamp, **changes)

    def age_ms(self, now: int) -> int:
        reference = self.updated_at or self.created_at
        return now - reference

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "status": self.status.value,
            "attempt": self.attempt,
            "payload": self.payload,
            "error": self.error,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "schemaVersion": self.schema_version,
        }

    def dumps(self) -> str:
        return compact_dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Job:
        try:
            job_id = str(data["id"])
            url = str(data["url"])
            status = JobStatus(data.get("status", JobStatus.PENDING.value))
            attempt = int(data.get("attempt") or 0)
            created_at = int(data.get("createdAt") or 0)
            updated_at = int(data.get("updatedAt") or created_at)
            schema_version = int(data.get("schemaVersion") or JOB_SCHEMA_VERSION)
        except (KeyError, TypeError, ValueError) as exc:
            raise CorruptRecordError(f"Invalid job record: {exc}") from exc
        if not job_id or not url:
            raise CorruptRecordError("Job record is missing its id or url")
        payload = data.get("payload")
        error = data.get("error")
        return cls(
            id=job_id,
            url=url,
            status=status,
            attempt=max(0, attempt),
            created_at=created_at,
            updated_at=updated_at,
            payload=str(payload) if payload is not None else None,
            error=str(error) if error is not None else None,
            schema_version=schema_version,
        )

    @classmethod
    def loads(cls, raw: str | bytes | None) -> Job:
        """Decode a stored record, raising :class:`CorruptRecordError` on garbage."""

        data = try_parse_json_or_none(raw)
        if not isinstance(data, Mapping):
            text = raw.decode("utf-8", "replace") if isinstance(raw, bytes) else raw
            raise CorruptRecordError("Stored job record is not a JSON object", raw=text)
        return cls.from_dict(data)


@dataclass(slots=True, frozen=True)
class JobHandle:
    """Result of an enqueue call."""

    job: Job
    existing: bool = False
    cached: bool = False

    @property
    def id(self) -> str:
        return self.job.id

    @property
    def status(self) -> JobStatus:
        return self.job.status

    @property
    def payload(self) -> str | None:
        return self.job.payload


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    """Transient progress notification for a running job. Never persisted."""

    job_id: str
    status: JobStatus
    type: ProgressType
    message: str
    progress: int = 0
    total: int = 0
    current: int = 0
    current_track: str | None = None
    error: str | None = None
    payload: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "jobId": self.job_id,
            "status": self.status.value,
            "type": self.type.value,
            "message": self.message,
            "progress": max(0, min(100, int(self.progress))),
            "total": self.total,
            "current": self.current,
        }
        if self.current_track is not None:
            data["currentTrack"] = self.current_track
        if self.error is not None:
            data["error"] = self.error
        if self.payload is not None:
            data["payload"] = self.payload
        return data

    def dumps(self) -> str:
        return compact_dumps(self.to_dict())


def percent(current: int, total: int) -> int:
    """Return ``current`` out of ``total`` as a rounded percentage."""

    if total <= 0:
        return 0
    return max(0, min(100, round(current * 100 / total)))


__all__ = [
    "JOB_SCHEMA_VERSION",
    "Job",
    "JobHandle",
    "JobStatus",
    "ProgressEvent",
    "ProgressType",
    "new_job_id",
    "percent",
]

"""Pydantic schemas for request and response bodies."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from tunequeue.models import Job


class DownloadRequest(BaseModel):
    url: Optional[str] = None


class JobOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    url: str
    status: Literal["pending", "processing", "done", "failed"]
    attempt: int = 0
    payload: Optional[str] = None
    error: Optional[str] = None
    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")

    @classmethod
    def from_job(cls, job: Job) -> JobOut:
        return cls(
            id=job.id,
            url=job.url,
            status=job.status.value,
            attempt=job.attempt,
            payload=job.payload,
            error=job.error,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


class DownloadResponse(BaseModel):
    message: str
    status: bool = True
    job: JobOut
    existing: bool = False
    cached: bool = False


class JobLookupResponse(BaseModel):
    message: str
    status: bool = True
    job: Optional[JobOut] = None


class LivenessResponse(BaseModel):
    status: Literal["ok"] = "ok"
    version: str


__all__ = [
    "DownloadRequest",
    "DownloadResponse",
    "JobLookupResponse",
    "JobOut",
    "LivenessResponse",
]

"""Domain-specific errors raised while queueing and executing jobs."""

from __future__ import annotations


class JobError(Exception):
    """Base class for failures raised while a job is executed."""

    retry: bool = False

    def __init__(self, message: str, *, stop_reason: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stop_reason = stop_reason


class JobValidationError(JobError):
    """Raised when the job URL does not match any supported catalog shape."""

    retry = False

    def __init__(self, message: str, *, stop_reason: str | None = "invalid_url") -> None:
        super().__init__(message, stop_reason=stop_reason)


class TransientJobError(JobError):
    """Raised for failures that may succeed on a later attempt."""

    retry = True


class CorruptRecordError(JobError):
    """Raised when a stored record cannot be decoded into a job."""

    def __init__(self, message: str, *, raw: str | None = None) -> None:
        super().__init__(message, stop_reason="corrupt_record")
        self.raw = raw


class StoreUnavailableError(JobError):
    """Raised when the backing store cannot be reached."""

    retry = True

    def __init__(self, message: str = "Store is unavailable", *, operation: str | None = None) -> None:
        super().__init__(message, stop_reason="store_unavailable")
        self.operation = operation


__all__ = [
    "CorruptRecordError",
    "JobError",
    "JobValidationError",
    "StoreUnavailableError",
    "TransientJobError",
]

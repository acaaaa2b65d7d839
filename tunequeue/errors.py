"""API error types and the JSON envelope they render to.

Every failed request answers with ``{"ok": false, "error": {"code", "message",
"meta"?}}`` and an ``X-Debug-Id`` header that is also written to the log, so
a client report can be matched to the server side record.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
import logging
from typing import Any, ClassVar
from uuid import uuid4

from fastapi import Request, status
from fastapi.responses import JSONResponse

from tunequeue.core.errors import StoreUnavailableError
from tunequeue.logging import get_logger
from tunequeue.logging_events import log_event

DEBUG_ID_HEADER = "X-Debug-Id"

_logger = get_logger(__name__)


class ErrorCode(str, Enum):
    """Application level error codes exposed via the public API."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    DEPENDENCY_ERROR = "DEPENDENCY_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @classmethod
    def for_status(cls, status_code: int) -> ErrorCode:
        if status_code == status.HTTP_404_NOT_FOUND:
            return cls.NOT_FOUND
        if status_code in {502, 503, 504}:
            return cls.DEPENDENCY_ERROR
        if 400 <= status_code < 500:
            return cls.VALIDATION_ERROR
        return cls.INTERNAL_ERROR

    @property
    def log_level(self) -> int:
        if self is ErrorCode.INTERNAL_ERROR:
            return logging.ERROR
        if self is ErrorCode.DEPENDENCY_ERROR:
            return logging.WARNING
        return logging.INFO


DEFAULT_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.VALIDATION_ERROR: "Request could not be completed.",
    ErrorCode.NOT_FOUND: "Resource not found.",
    ErrorCode.DEPENDENCY_ERROR: "Job store is unavailable.",
    ErrorCode.INTERNAL_ERROR: "An unexpected error occurred.",
}


def error_envelope(
    code: ErrorCode, message: str, meta: Mapping[str, Any] | None = None
) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code.value, "message": message}
    if meta:
        error["meta"] = dict(meta)
    return {"ok": False, "error": error}


def render_error(
    request: Request,
    *,
    code: ErrorCode,
    status_code: int,
    message: str | None = None,
    meta: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    """Render the envelope for ``request`` and log it under a fresh debug id."""

    debug_id = uuid4().hex
    response = JSONResponse(
        status_code=status_code,
        content=error_envelope(code, message or DEFAULT_MESSAGES[code], meta),
        headers={**(headers or {}), DEBUG_ID_HEADER: debug_id},
    )
    log_event(
        _logger,
        "api.error",
        level=code.log_level,
        code=code.value,
        status=status_code,
        path=request.url.path,
        method=request.method,
        debug_id=debug_id,
    )
    return response


class AppError(Exception):
    """Base class for errors the exception handlers render as an envelope."""

    code: ClassVar[ErrorCode] = ErrorCode.INTERNAL_ERROR
    status_code: ClassVar[int] = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str | None = None,
        *,
        meta: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.message = message or DEFAULT_MESSAGES[self.code]
        super().__init__(self.message)
        self.meta = dict(meta) if meta else None
        self.headers = dict(headers) if headers else None

    def render(self, request: Request) -> JSONResponse:
        return render_error(
            request,
            code=self.code,
            status_code=self.status_code,
            message=self.message,
            meta=self.meta,
            headers=self.headers,
        )


class ValidationAppError(AppError):
    code = ErrorCode.VALIDATION_ERROR
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(AppError):
    code = ErrorCode.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND


class DependencyError(AppError):
    """The job store could not be reached; clients should fall back to polling."""

    code = ErrorCode.DEPENDENCY_ERROR
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    @classmethod
    def from_store_error(cls, exc: StoreUnavailableError) -> DependencyError:
        _logger.warning("Store unavailable during %s: %s", exc.operation or "request", exc)
        return cls(meta={"fallback": "polling"})


class InternalServerError(AppError):
    pass


__all__ = [
    "AppError",
    "DEBUG_ID_HEADER",
    "DependencyError",
    "ErrorCode",
    "InternalServerError",
    "NotFoundError",
    "ValidationAppError",
    "error_envelope",
    "render_error",
]

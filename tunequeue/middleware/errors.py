"""Exception handlers rendering every failure as the error envelope."""

from __future__ import annotations

from typing import Any, Mapping

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tunequeue.core.errors import StoreUnavailableError
from tunequeue.errors import AppError, DependencyError, ErrorCode, InternalServerError, render_error
from tunequeue.logging import get_logger

_logger = get_logger(__name__)

_LOCATION_PREFIXES = frozenset({"body", "query", "path", "header", "cookie"})


def _field_name(raw_loc: Any) -> str:
    parts = [str(part) for part in (raw_loc if isinstance(raw_loc, (list, tuple)) else [raw_loc])]
    if parts and parts[0] in _LOCATION_PREFIXES:
        parts = parts[1:]
    return ".".join(parts) or "?"


def _detail_message(detail: Any) -> str | None:
    if isinstance(detail, str) and detail.strip():
        return detail
    if isinstance(detail, Mapping):
        for key in ("message", "detail", "error"):
            candidate = detail.get(key)
            if isinstance(candidate, str) and candidate.strip():
                return candidate
    return None


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [
        {"name": _field_name(error.get("loc", ())), "message": error.get("msg", "Invalid input.")}
        for error in exc.errors()
    ]
    return render_error(
        request,
        code=ErrorCode.VALIDATION_ERROR,
        status_code=status.HTTP_400_BAD_REQUEST,
        message="Request validation failed.",
        meta={"fields": fields} if fields else None,
    )


async def _handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    status_code = exc.status_code or status.HTTP_500_INTERNAL_SERVER_ERROR
    return render_error(
        request,
        code=ErrorCode.for_status(status_code),
        status_code=status_code,
        message=_detail_message(exc.detail),
        headers=exc.headers,
    )


async def _handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    return exc.render(request)


async def _handle_store_unavailable(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    return DependencyError.from_store_error(exc).render(request)


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    _logger.exception("Unhandled application error", exc_info=exc)
    return InternalServerError().render(request)


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the canonical exception handlers for the API."""

    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)
    app.add_exception_handler(AppError, _handle_app_error)
    app.add_exception_handler(StoreUnavailableError, _handle_store_unavailable)
    app.add_exception_handler(Exception, _handle_unexpected_error)


__all__ = ["setup_exception_handlers"]

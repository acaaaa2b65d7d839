"""Structured log events: an event name plus flat JSON-scalar fields."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

_SCALARS = (str, int, float, bool, type(None))


def event_extra(event: str, fields: Mapping[str, Any]) -> dict[str, Any]:
    """Return the ``extra`` mapping for ``event``; nested values are rejected."""

    if not isinstance(event, str) or not event.strip():
        raise ValueError("event must be a non-empty string")
    extra: dict[str, Any] = {"event": event}
    for name, value in fields.items():
        if not isinstance(value, _SCALARS):
            raise TypeError(f"Field '{name}' must be a flat JSON-compatible value")
        extra[name] = value
    return extra


def log_event(logger: Any, event: str, /, *, level: int = logging.INFO, **fields: Any) -> None:
    """Emit ``event`` with every field as an attribute of the log record.

    ``record.status``, ``record.entity_id`` and friends are what the tests and
    log shippers read.
    """

    logger.log(level, event, extra=event_extra(event, fields))


__all__ = ["event_extra", "log_event"]

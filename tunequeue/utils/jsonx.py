"""Safe JSON serialisation helpers."""

from __future__ import annotations

import json
from typing import Any

_BUFFER_TYPES = (bytes, bytearray, memoryview)

__all__ = ["compact_dumps", "safe_loads", "try_parse_json_or_none"]


def compact_dumps(obj: Any) -> str:
    """Serialise ``obj`` to compact JSON, keeping key order stable."""

    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


def safe_loads(data: str | bytes | bytearray | memoryview) -> Any:
    """Parse JSON data strictly, rejecting blank inputs."""

    if isinstance(data, _BUFFER_TYPES):
        buffer = data if isinstance(data, bytes) else bytes(data)
        if not buffer.strip():
            raise ValueError("data must not be empty")
        return json.loads(buffer)
    if isinstance(data, str):
        stripped = data.strip()
        if not stripped:
            raise ValueError("data must not be empty")
        return json.loads(stripped)
    raise TypeError("data must be str or bytes")


def try_parse_json_or_none(
    data: str | bytes | bytearray | memoryview | None,
) -> Any | None:
    """Return parsed JSON or ``None`` for invalid/blank input."""

    if data is None:
        return None
    try:
        return safe_loads(data)
    except (TypeError, ValueError):
        return None

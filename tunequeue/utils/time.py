"""Time helpers based on epoch milliseconds."""

from __future__ import annotations

import time as _time

__all__ = ["now_ms"]


def now_ms() -> int:
    """Return the current UNIX timestamp in milliseconds."""

    return int(_time.time() * 1000)

"""Logging setup shared by the API and the worker process."""

from __future__ import annotations

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime"}

_QUIET_LOGGERS = ("urllib3", "spotipy")


class EventFormatter(logging.Formatter):
    """Append structured ``extra`` fields as sorted ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        if not fields:
            return line
        pairs = " ".join(f"{key}={fields[key]}" for key in sorted(fields))
        return f"{line} | {pairs}"


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Send records to stdout (and ``log_file`` when set) through :class:`EventFormatter`."""

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    formatter = EventFormatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)

    root_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=root_level, handlers=handlers, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, root_level))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["EventFormatter", "configure_logging", "get_logger"]

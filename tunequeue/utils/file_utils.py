"""Utilities for naming and locating downloaded audio files."""

from __future__ import annotations

import re
from pathlib import Path

_INVALID_CHARS = re.compile(r'[\\/:"*?<>|]+')
_ARCHIVE_INVALID = re.compile(r"[^\w\s-]")
_WHITESPACE = re.compile(r"\s+")

AUDIO_EXTENSIONS: tuple[str, ...] = (".mp3",)


def sanitize_name(name: str) -> str:
    """Return *name* with characters that are invalid in file names removed."""

    cleaned = _INVALID_CHARS.sub("", name or "").strip()
    return cleaned or "Unknown"


def archive_filename(name: str) -> str:
    """Return an ASCII-safe attachment name (without extension) for *name*."""

    cleaned = _ARCHIVE_INVALID.sub("", name or "")
    cleaned = _WHITESPACE.sub("_", cleaned).strip("_")
    return cleaned or "download"


def list_audio_files(folder: Path) -> list[Path]:
    """Return audio files directly inside *folder*, sorted by name."""

    if not folder.is_dir():
        return []
    return sorted(
        entry
        for entry in folder.iterdir()
        if entry.is_file() and entry.suffix.lower() in AUDIO_EXTENSIONS
    )


def find_existing_track(folder: Path, track_name: str) -> Path | None:
    """Return an already fetched file whose name contains *track_name*.

    Fetched files are named after the matched video title, so the check is a
    case-insensitive substring match rather than an exact file name.
    """

    needle = (track_name or "").strip().lower()
    if not needle:
        return None
    for entry in list_audio_files(folder):
        if needle in entry.stem.lower():
            return entry
    return None


__all__ = [
    "AUDIO_EXTENSIONS",
    "archive_filename",
    "find_existing_track",
    "list_audio_files",
    "sanitize_name",
]

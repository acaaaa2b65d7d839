"""Zip delivery of finished download folders."""

from __future__ import annotations

import asyncio
import io
from pathlib import Path
from typing import Literal
import zipfile

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from tunequeue.dependencies import get_downloads_root
from tunequeue.errors import NotFoundError
from tunequeue.logging import get_logger
from tunequeue.logging_events import log_event
from tunequeue.utils.file_utils import archive_filename, list_audio_files, sanitize_name

router = APIRouter(tags=["Delivery"])
logger = get_logger(__name__)

DeliveryKind = Literal["track", "playlist", "album", "artist"]


def resolve_folder(root: Path, kind: str, name: str) -> Path | None:
    """Return the folder for ``name`` below ``root/kind`` or ``None`` if it escapes."""

    base = (root / kind).resolve()
    candidate = (base / sanitize_name(name)).resolve()
    if candidate.parent != base:
        return None
    return candidate


def build_archive(files: list[Path]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for path in files:
            archive.write(path, arcname=path.name)
    return buffer.getvalue()


@router.get("/downloads/{kind}")
async def download_archive(
    kind: DeliveryKind,
    q: str = Query(..., min_length=1),
    root: Path = Depends(get_downloads_root),
) -> Response:
    folder = resolve_folder(root, kind, q)
    files = list_audio_files(folder) if folder is not None else []
    if not files:
        raise NotFoundError(f"No finished {kind} named '{q}'.")

    # A single track is named after its file, collections after the folder.
    label = files[0].stem if kind == "track" else q
    filename = f"{archive_filename(label)}.zip"
    content = await asyncio.to_thread(build_archive, files)
    log_event(
        logger,
        "api.delivery.archive",
        kind=kind,
        files=len(files),
        bytes=len(content),
    )
    return Response(
        content=content,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


__all__ = ["build_archive", "resolve_folder", "router"]

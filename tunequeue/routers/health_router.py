"""Liveness endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from tunequeue import __version__
from tunequeue.schemas import LivenessResponse

router = APIRouter(tags=["Health"])


@router.get("/live", response_model=LivenessResponse)
async def live() -> LivenessResponse:
    return LivenessResponse(version=__version__)


__all__ = ["router"]

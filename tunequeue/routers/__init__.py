"""HTTP routers exposed by the tunequeue API."""

from __future__ import annotations

from fastapi import APIRouter

from .delivery_router import router as delivery_router
from .download_router import router as download_router
from .health_router import router as health_router
from .progress_router import router as progress_router

api_router = APIRouter()
api_router.include_router(download_router)
api_router.include_router(progress_router)
api_router.include_router(delivery_router)
api_router.include_router(health_router)

__all__ = [
    "api_router",
    "delivery_router",
    "download_router",
    "health_router",
    "progress_router",
]

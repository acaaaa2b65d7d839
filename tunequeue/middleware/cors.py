"""CORS middleware helpers."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tunequeue.config import ApiConfig

ALLOWED_METHODS: tuple[str, ...] = ("GET", "POST", "OPTIONS")
ALLOWED_HEADERS: tuple[str, ...] = ("Content-Type", "Authorization")


def install_cors(app: FastAPI, *, api: ApiConfig) -> None:
    """Register CORS middleware for the configured browser origins."""

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(api.cors_origins),
        allow_methods=list(ALLOWED_METHODS),
        allow_headers=list(ALLOWED_HEADERS),
        allow_credentials=True,
        expose_headers=["X-Debug-Id"],
    )


__all__ = ["ALLOWED_HEADERS", "ALLOWED_METHODS", "install_cors"]

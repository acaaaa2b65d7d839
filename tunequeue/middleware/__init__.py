"""Application middleware registration helpers."""

from __future__ import annotations

from fastapi import FastAPI

from tunequeue.config import AppConfig

from .cors import install_cors
from .errors import setup_exception_handlers


def install_middleware(app: FastAPI, config: AppConfig) -> None:
    """Install the configured middleware stack on the provided application."""

    install_cors(app, api=config.api)
    setup_exception_handlers(app)


__all__ = ["install_middleware"]

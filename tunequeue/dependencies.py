"""FastAPI dependency providers."""

from __future__ import annotations

from pathlib import Path

from fastapi import Request

from tunequeue.config import AppConfig
from tunequeue.errors import DependencyError
from tunequeue.orchestrator.bootstrap import QueueServices
from tunequeue.orchestrator.job_queue import JobQueue
from tunequeue.orchestrator.progress import ProgressBus


def get_app_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_queue_services(request: Request) -> QueueServices:
    services = getattr(request.app.state, "services", None)
    if not isinstance(services, QueueServices):
        raise DependencyError("Job queue is not initialised.")
    return services


def get_job_queue(request: Request) -> JobQueue:
    return get_queue_services(request).queue


def get_progress_bus(request: Request) -> ProgressBus:
    return get_queue_services(request).progress


def get_downloads_root(request: Request) -> Path:
    return Path(get_app_config(request).fetcher.downloads_dir)


__all__ = [
    "get_app_config",
    "get_downloads_root",
    "get_job_queue",
    "get_progress_bus",
    "get_queue_services",
]

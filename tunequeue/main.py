"""Entry point for the tunequeue API service."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
import contextlib
from contextlib import asynccontextmanager
import signal

from fastapi import FastAPI

from tunequeue import __version__
from tunequeue.config import AppConfig, load_config
from tunequeue.core.errors import StoreUnavailableError
from tunequeue.logging import configure_logging, get_logger
from tunequeue.middleware import install_middleware
from tunequeue.orchestrator.bootstrap import (
    QueueServices,
    WorkerRuntime,
    bootstrap_worker,
    build_queue_services,
)
from tunequeue.routers import api_router

logger = get_logger(__name__)

RuntimeFactory = Callable[[AppConfig, QueueServices], WorkerRuntime]
FaultHandler = Callable[[BaseException], None]


def _embedded_runtime(config: AppConfig, services: QueueServices) -> WorkerRuntime:
    return bootstrap_worker(config, services=services, owns_store=False)


def _stop_server(fault: BaseException) -> None:
    # uvicorn turns SIGTERM into a graceful server shutdown.
    signal.raise_signal(signal.SIGTERM)


async def _watch_runtime(runtime: WorkerRuntime, on_fault: FaultHandler) -> None:
    """Shut the embedded worker down and stop the server when one of its tasks dies."""

    fault = await runtime.wait_for_fault()
    if fault is None:
        return
    logger.error(
        "Embedded worker crashed",
        exc_info=fault,
        extra={"event": "api.worker", "status": "fault", "error": str(fault)},
    )
    await asyncio.shield(runtime.shutdown("fault"))
    on_fault(fault)


async def _check_store(services: QueueServices) -> None:
    try:
        await services.store.ping()
    except StoreUnavailableError as exc:
        logger.warning(
            "Store not reachable at startup",
            extra={"event": "api.startup", "status": "degraded", "error": str(exc)},
        )
    else:
        logger.info(
            "Store connection established",
            extra={"event": "api.startup", "status": "ok", "backend": services.store.name},
        )


def create_app(
    config: AppConfig | None = None,
    *,
    services: QueueServices | None = None,
    runtime_factory: RuntimeFactory | None = None,
    on_worker_fault: FaultHandler | None = None,
) -> FastAPI:
    """Build the FastAPI application; store handles are opened in the lifespan."""

    app_config = config or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owns_services = services is None
        resolved = services or build_queue_services(app_config)
        app.state.services = resolved
        await _check_store(resolved)

        runtime: WorkerRuntime | None = None
        watcher: asyncio.Task[None] | None = None
        if app_config.api.worker_embedded:
            factory = runtime_factory or _embedded_runtime
            runtime = factory(app_config, resolved)
            await runtime.start()
            watcher = asyncio.create_task(
                _watch_runtime(runtime, on_worker_fault or _stop_server),
                name="worker-watch",
            )
            logger.info("Embedded worker started", extra={"event": "api.worker", "status": "started"})
        app.state.worker_runtime = runtime
        try:
            yield
        finally:
            if watcher is not None and not watcher.done():
                watcher.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await watcher
            if runtime is not None:
                await runtime.shutdown("api_shutdown")
            if owns_services:
                await resolved.store.close()
            app.state.worker_runtime = None
            app.state.services = None
            logger.info("tunequeue API stopped")

    app = FastAPI(title="tunequeue", version=__version__, lifespan=lifespan)
    app.state.config = app_config
    app.state.services = services
    install_middleware(app, app_config)
    app.include_router(api_router)
    return app


app = create_app()


def run() -> None:
    import uvicorn

    config = load_config()
    configure_logging(config.logging.level, config.logging.log_file)
    uvicorn.run("tunequeue.main:app", host="0.0.0.0", port=config.api.port, reload=False)


__all__ = ["app", "create_app", "run"]

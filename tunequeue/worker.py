"""Standalone worker process: polls the queue until signalled to stop."""

from __future__ import annotations

import asyncio
import signal

from tunequeue.config import AppConfig, load_config
from tunequeue.logging import configure_logging, get_logger
from tunequeue.orchestrator.bootstrap import WorkerRuntime, bootstrap_worker

logger = get_logger(__name__)

SHUTDOWN_SIGNALS: tuple[signal.Signals, ...] = tuple(
    getattr(signal, name) for name in ("SIGINT", "SIGTERM", "SIGQUIT") if hasattr(signal, name)
)


async def run_worker(
    config: AppConfig,
    *,
    runtime: WorkerRuntime | None = None,
    stop_event: asyncio.Event | None = None,
    install_signal_handlers: bool = True,
) -> int:
    """Run the worker until a shutdown signal, a stop request or a task fault.

    Returns the number of claimed jobs released back to pending.
    """

    runtime = runtime or bootstrap_worker(config)
    stop_event = stop_event or asyncio.Event()
    reason: dict[str, str] = {"value": "stopped"}

    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    if install_signal_handlers:
        for sig in SHUTDOWN_SIGNALS:

            def _on_signal(name: str = sig.name) -> None:
                reason["value"] = name
                stop_event.set()

            try:
                loop.add_signal_handler(sig, _on_signal)
            except (NotImplementedError, RuntimeError):
                continue
            installed.append(sig)

    await runtime.start()
    stop_waiter = asyncio.create_task(stop_event.wait(), name="worker-stop")
    fault_waiter = asyncio.create_task(runtime.wait_for_fault(), name="worker-fault")
    try:
        done, _ = await asyncio.wait(
            {stop_waiter, fault_waiter}, return_when=asyncio.FIRST_COMPLETED
        )
        if fault_waiter in done:
            fault = fault_waiter.result()
            if fault is not None:
                logger.error("Worker task crashed", exc_info=fault)
                reason["value"] = "fault"
    finally:
        for waiter in (stop_waiter, fault_waiter):
            if not waiter.done():
                waiter.cancel()
        for sig in installed:
            loop.remove_signal_handler(sig)
        released = await runtime.shutdown(reason["value"])
    return released


def main() -> None:
    config = load_config()
    configure_logging(config.logging.level, config.logging.log_file)
    logger.info("Starting tunequeue worker", extra={"event": "worker.start"})
    asyncio.run(run_worker(config))
    logger.info("Worker shutdown complete", extra={"event": "worker.stop"})


if __name__ == "__main__":  # pragma: no cover - manual execution
    main()


__all__ = ["SHUTDOWN_SIGNALS", "main", "run_worker"]

"""Periodic timer running a maintenance coroutine on a fixed interval."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import contextlib
from typing import Any

from tunequeue.logging import get_logger


def _coerce_interval(value: float | int | str | None, default: float) -> float:
    if value is None:
        return default
    try:
        resolved = float(value)
    except (TypeError, ValueError):
        return default
    if resolved < 0:
        return 0.0
    return resolved


class PeriodicTimer:
    """Run ``action`` every ``interval_seconds`` until stopped.

    ``trigger`` runs a single pass and is skipped while another pass holds the
    lock. Exceptions raised by ``action`` end the timer task so the owning
    runtime can observe them through :attr:`task`.
    """

    def __init__(
        self,
        name: str,
        action: Callable[[], Awaitable[Any]],
        *,
        interval_seconds: float | int | str | None,
        run_on_start: bool = False,
        shutdown_grace_ms: int = 2_000,
    ) -> None:
        self._name = name
        self._action = action
        self._interval = _coerce_interval(interval_seconds, 60.0)
        self._run_on_start = run_on_start
        self._shutdown_grace = max(0.0, shutdown_grace_ms / 1000.0)
        self._logger = get_logger(__name__)
        self._lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @property
    def name(self) -> str:
        return self._name

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        task = self._task
        return bool(task and not task.done())

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    async def start(self) -> bool:
        """Start the background task; ``False`` when it is already running."""

        if self.is_running:
            return False
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=self._name)
        return True

    async def stop(self) -> None:
        """Signal the timer to stop and await task completion."""

        self._stop_event.set()
        task = self._task
        if task is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self._shutdown_grace)
        except TimeoutError:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        except asyncio.CancelledError:
            if not task.done():
                raise
        except Exception:
            self._logger.exception("%s stopped after a failed pass", self._name)
        finally:
            self._task = None

    async def trigger(self) -> Any:
        """Run one pass of the action unless one is already in flight."""

        if self._lock.locked():
            self._logger.debug("Skipping %s pass; previous pass still running", self._name)
            return None
        async with self._lock:
            return await self._action()

    async def _run(self) -> None:
        if self._run_on_start:
            await self.trigger()
        while not self._stop_event.is_set():
            await self._sleep_until_next()
            if self._stop_event.is_set():
                break
            await self.trigger()

    async def _sleep_until_next(self) -> None:
        if self._interval <= 0:
            await asyncio.sleep(0)
            return
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)


__all__ = ["PeriodicTimer"]

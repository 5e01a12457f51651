"""Timer scheduling for the transfer engine.

The engine never sleeps: retry delays, acknowledgement timeouts and the
periodic sweep are callbacks handed to a scheduler. Tests swap in a manual
scheduler with a fake clock.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Protocol

import structlog

log = structlog.get_logger()

AsyncCallback = Callable[[], Awaitable[None]]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Port: a monotonic clock plus delayed async callbacks."""

    def now(self) -> float: ...

    def call_later(self, delay: float, callback: AsyncCallback) -> TimerHandle: ...


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: AsyncCallback) -> TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(max(delay, 0.0), self._spawn, callback)

    def _spawn(self, callback: AsyncCallback) -> None:
        task = asyncio.ensure_future(callback())
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("scheduled_callback_failed", exc_info=task.exception())

    async def drain(self) -> None:
        """Wait for callbacks that are already running."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

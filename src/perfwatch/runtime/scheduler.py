from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine, Protocol

from loguru import logger


class CancelToken(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Timers and fire-and-forget work for a single cooperative thread of control."""

    def call_later(self, delay_sec: float, callback: Callable[[], None]) -> CancelToken:
        ...

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        ...


class AsyncioScheduler:
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay_sec: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay_sec), callback)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = self.loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._reap)

    def _reap(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task failed: {exc!r}")

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

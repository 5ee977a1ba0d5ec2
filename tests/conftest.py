from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Coroutine

import pytest

from perfwatch.collector import Collector, Delivered
from perfwatch.config import CollectorConfig
from perfwatch.metrics import Batch
from perfwatch.runtime import MemoryPlatform


class FakeClock:
    def __init__(self, start: float = 1_700_000_000_000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, ms: float) -> None:
        self.value += ms


@dataclass
class _Timer:
    due: float
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Fake clock scheduler: timers fire on advance(), spawned coroutines run on drain()."""

    def __init__(self) -> None:
        self.clock = 0.0
        self.timers: list[_Timer] = []
        self.spawned: list[Coroutine[Any, Any, Any]] = []

    def call_later(self, delay_sec: float, callback: Callable[[], None]) -> _Timer:
        timer = _Timer(self.clock + delay_sec, callback)
        self.timers.append(timer)
        return timer

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        self.spawned.append(coro)

    @property
    def pending_timers(self) -> list[_Timer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.clock + seconds
        while True:
            due = sorted((t for t in self.pending_timers if t.due <= target), key=lambda t: t.due)
            if not due:
                break
            timer = due[0]
            self.timers.remove(timer)
            self.clock = timer.due
            timer.callback()
        self.clock = target

    def drain(self) -> None:
        while self.spawned:
            asyncio.run(self.spawned.pop(0))

    def discard(self) -> None:
        while self.spawned:
            self.spawned.pop(0).close()


class FakeSocket:
    def __init__(self, inbox: list[str | bytes] | None = None) -> None:
        self.inbox = list(inbox or [])
        self.sent: list[str] = []
        self.closed = False

    async def send(self, text: str) -> None:
        self.sent.append(text)

    async def close(self) -> None:
        self.closed = True

    async def __aiter__(self) -> AsyncIterator[str | bytes]:
        for raw in list(self.inbox):
            yield raw


class FakeDialer:
    def __init__(self) -> None:
        self.dialed: list[str] = []
        self.sockets: list[FakeSocket] = []
        self.upcoming: list[FakeSocket] = []
        self.fail = False

    @asynccontextmanager
    async def __call__(self, url: str) -> AsyncIterator[FakeSocket]:
        self.dialed.append(url)
        if self.fail:
            raise ConnectionError("connection refused")
        socket = self.upcoming.pop(0) if self.upcoming else FakeSocket()
        self.sockets.append(socket)
        yield socket


class RecordingDelivery:
    def __init__(self) -> None:
        self.calls: list[tuple[str, Batch]] = []
        self.closed = False

    async def deliver(self, endpoint: str, batch: Batch) -> Delivered:
        self.calls.append((endpoint, batch))
        return Delivered(status_code=200, count=len(batch))

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def platform(clock: FakeClock) -> MemoryPlatform:
    return MemoryPlatform(clock=clock, memory=42.0)


@pytest.fixture
def scheduler() -> Any:
    sched = ManualScheduler()
    yield sched
    sched.discard()


@pytest.fixture
def dialer() -> FakeDialer:
    return FakeDialer()


@pytest.fixture
def delivery() -> RecordingDelivery:
    return RecordingDelivery()


@pytest.fixture
def make_collector(
    platform: MemoryPlatform,
    scheduler: ManualScheduler,
    delivery: RecordingDelivery,
    dialer: FakeDialer,
) -> Callable[..., Collector]:
    def factory(**options: Any) -> Collector:
        config = CollectorConfig.from_options(options)
        return Collector(config, platform=platform, scheduler=scheduler, delivery=delivery, dialer=dialer)

    return factory

from __future__ import annotations

import asyncio

from perfwatch.runtime import AsyncioScheduler


def test_spawn_and_timers_run_on_the_loop() -> None:
    seen: list[str] = []

    async def work(name: str) -> None:
        await asyncio.sleep(0)
        seen.append(name)

    async def failing() -> None:
        raise RuntimeError("background failure")

    async def scenario() -> None:
        scheduler = AsyncioScheduler()
        scheduler.spawn(work("task"))
        scheduler.spawn(failing())
        scheduler.call_later(0.01, lambda: seen.append("timer"))
        cancelled = scheduler.call_later(0.01, lambda: seen.append("cancelled"))
        cancelled.cancel()
        await scheduler.drain()
        await asyncio.sleep(0.05)

    asyncio.run(scenario())
    assert seen == ["task", "timer"]

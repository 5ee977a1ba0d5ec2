from __future__ import annotations

from perfwatch.runtime.platform import (
    MemoryPlatform,
    Platform,
    PlatformContext,
    ProcessPlatform,
    error_info,
)
from perfwatch.runtime.scheduler import AsyncioScheduler, CancelToken, Scheduler

__all__ = [
    "AsyncioScheduler",
    "CancelToken",
    "MemoryPlatform",
    "Platform",
    "PlatformContext",
    "ProcessPlatform",
    "Scheduler",
    "error_info",
]

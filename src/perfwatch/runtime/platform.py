from __future__ import annotations

import asyncio
import json
import sys
import time
import traceback
import tracemalloc
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Callable, Mapping, Protocol

from loguru import logger

from perfwatch.storage import KeyValueStore

ErrorInfo = Mapping[str, Any]
ErrorCallback = Callable[[ErrorInfo], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True, slots=True)
class PlatformContext:
    user_agent: str = "server"
    url: str = ""


class Platform(Protocol):
    """Host capabilities the collector needs; swapped for a double outside a real process."""

    def now(self) -> float:
        ...

    def persist(self, key: str, value: Any) -> None:
        ...

    def retrieve(self, key: str) -> Any:
        ...

    def remove(self, key: str) -> None:
        ...

    def observe_unhandled_errors(self, callback: ErrorCallback) -> Unsubscribe:
        ...

    def memory_percent(self) -> float | None:
        ...

    def context(self) -> PlatformContext:
        ...


def error_info(exc: BaseException, tb: TracebackType | None = None) -> dict[str, Any]:
    return {
        "message": str(exc),
        "errorType": type(exc).__name__,
        "stack": "".join(traceback.format_exception(type(exc), exc, tb or exc.__traceback__)),
    }


def _decode(raw: str | None) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


class MemoryPlatform:
    def __init__(
        self,
        clock: Callable[[], float] | None = None,
        memory: float | None = None,
        context: PlatformContext | None = None,
    ) -> None:
        self._clock = clock or (lambda: time.time() * 1000.0)
        self._memory = memory
        self._context = context or PlatformContext()
        self._values: dict[str, str] = {}
        self._callbacks: list[ErrorCallback] = []

    def now(self) -> float:
        return self._clock()

    def persist(self, key: str, value: Any) -> None:
        self._values[key] = json.dumps(value)

    def retrieve(self, key: str) -> Any:
        return _decode(self._values.get(key))

    def put_raw(self, key: str, raw: str) -> None:
        self._values[key] = raw

    def remove(self, key: str) -> None:
        self._values.pop(key, None)

    def observe_unhandled_errors(self, callback: ErrorCallback) -> Unsubscribe:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def emit_error(self, info: ErrorInfo) -> None:
        for callback in list(self._callbacks):
            callback(info)

    def memory_percent(self) -> float | None:
        return self._memory

    def context(self) -> PlatformContext:
        return self._context


class ProcessPlatform:
    """Real host: wall clock, process-level error hooks, optional DuckDB persistence."""

    def __init__(
        self,
        store: KeyValueStore | None = None,
        memory_limit_bytes: int | None = None,
        context: PlatformContext | None = None,
    ) -> None:
        self._store = store
        self._fallback: dict[str, str] = {}
        self._memory_limit = memory_limit_bytes
        self._context = context or PlatformContext()

    def now(self) -> float:
        return time.time() * 1000.0

    def persist(self, key: str, value: Any) -> None:
        raw = json.dumps(value)
        if self._store is None:
            self._fallback[key] = raw
            return
        self._store.put(key, raw)

    def retrieve(self, key: str) -> Any:
        if self._store is None:
            return _decode(self._fallback.get(key))
        return _decode(self._store.get(key))

    def remove(self, key: str) -> None:
        if self._store is None:
            self._fallback.pop(key, None)
            return
        self._store.delete(key)

    def observe_unhandled_errors(self, callback: ErrorCallback) -> Unsubscribe:
        previous_hook = sys.excepthook

        def excepthook(
            exc_type: type[BaseException],
            exc: BaseException,
            tb: TracebackType | None,
        ) -> None:
            callback(error_info(exc, tb))
            previous_hook(exc_type, exc, tb)

        sys.excepthook = excepthook

        loop: asyncio.AbstractEventLoop | None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        previous_handler = loop.get_exception_handler() if loop is not None else None
        if loop is not None:

            def handler(inner: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
                exc = context.get("exception")
                if isinstance(exc, BaseException):
                    callback(error_info(exc))
                else:
                    callback({"message": context.get("message", ""), "errorType": "unhandledRejection"})
                if previous_handler is not None:
                    previous_handler(inner, context)
                else:
                    inner.default_exception_handler(context)

            loop.set_exception_handler(handler)
        else:
            logger.debug("No running event loop; only sys.excepthook is observed")

        def unsubscribe() -> None:
            if sys.excepthook is excepthook:
                sys.excepthook = previous_hook
            if loop is not None and not loop.is_closed():
                loop.set_exception_handler(previous_handler)

        return unsubscribe

    def memory_percent(self) -> float | None:
        if not self._memory_limit or not tracemalloc.is_tracing():
            return None
        current, _ = tracemalloc.get_traced_memory()
        return min(100.0, current / self._memory_limit * 100.0)

    def context(self) -> PlatformContext:
        return self._context

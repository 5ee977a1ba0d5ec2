from __future__ import annotations

import asyncio
from contextlib import AbstractAsyncContextManager
from enum import Enum
from typing import Any, AsyncIterator, Callable, Coroutine, Protocol

from loguru import logger

from perfwatch.live.messages import Envelope, EnvelopeStyle, MessageName, decode, encode
from perfwatch.runtime import CancelToken, Scheduler


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"


class LiveSocket(Protocol):
    async def send(self, text: str) -> None:
        ...

    async def close(self) -> None:
        ...

    def __aiter__(self) -> AsyncIterator[str | bytes]:
        ...


Dialer = Callable[[str], AbstractAsyncContextManager[LiveSocket]]
MessageCallback = Callable[[Envelope], None]


class LiveConnection:
    """Reconnecting live channel: DISCONNECTED -> CONNECTING -> OPEN -> DISCONNECTED.

    A close that was not requested through :meth:`close` schedules exactly one
    reconnect after ``reconnect_interval_sec``. :meth:`close` is sticky: no
    reconnect happens again until :meth:`reset` is called.
    """

    def __init__(
        self,
        url: str,
        scheduler: Scheduler,
        dialer: Dialer,
        reconnect_interval_sec: float,
        clock: Callable[[], float],
        session_id: str | None = None,
        on_message: MessageCallback | None = None,
        style: EnvelopeStyle = EnvelopeStyle.EVENT,
    ) -> None:
        self.url = url
        self.reconnect_interval_sec = reconnect_interval_sec
        self.session_id = session_id
        self.on_message = on_message
        self.state = ConnectionState.DISCONNECTED
        self._scheduler = scheduler
        self._dialer = dialer
        self._clock = clock
        self._style = style
        self._socket: LiveSocket | None = None
        self._manually_closed = False
        self._reconnect: CancelToken | None = None
        self._generation = 0

    @property
    def manually_closed(self) -> bool:
        return self._manually_closed

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect is not None

    def connect(self) -> None:
        if self.state is not ConnectionState.DISCONNECTED:
            logger.debug(f"Live connection already {self.state.value}; connect ignored")
            return
        if self._manually_closed:
            logger.debug("Live connection was closed manually; connect ignored")
            return
        self._cancel_reconnect()
        self.state = ConnectionState.CONNECTING
        self._generation += 1
        if not self._spawn(self._run(self._generation)):
            self.state = ConnectionState.DISCONNECTED

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> bool:
        try:
            self._scheduler.spawn(coro)
        except RuntimeError as exc:
            coro.close()
            logger.warning(f"Live channel idle, scheduler unavailable: {exc}")
            return False
        return True

    async def _run(self, generation: int) -> None:
        try:
            async with self._dialer(self.url) as socket:
                if generation != self._generation:
                    return
                self.handle_open(socket)
                async for raw in socket:
                    if generation != self._generation:
                        break
                    self.handle_message(raw)
        except asyncio.CancelledError:
            if generation == self._generation:
                self._socket = None
                self.state = ConnectionState.DISCONNECTED
            raise
        except Exception as exc:
            logger.warning(f"Live connection to {self.url} failed: {exc!r}")
        if generation == self._generation:
            self.handle_close()

    def handle_open(self, socket: LiveSocket) -> None:
        self._socket = socket
        self.state = ConnectionState.OPEN
        self._cancel_reconnect()
        logger.info(f"Live connection open: {self.url}")
        if self.session_id is not None:
            self.send(MessageName.HELLO, {"sessionId": self.session_id, "ts": self._clock()})

    def handle_message(self, raw: str | bytes) -> None:
        envelope = decode(raw)
        if envelope is None:
            logger.debug("Dropping unparseable live message")
            return
        if envelope.matches(MessageName.PING):
            self.send(MessageName.PONG, {"ts": self._clock()})
            return
        if self.on_message is not None:
            self.on_message(envelope)

    def handle_close(self) -> None:
        self._socket = None
        self.state = ConnectionState.DISCONNECTED
        if self._manually_closed or self._reconnect is not None:
            return
        logger.info(f"Live connection closed; reconnecting in {self.reconnect_interval_sec:.1f}s")
        try:
            self._reconnect = self._scheduler.call_later(self.reconnect_interval_sec, self._reconnect_due)
        except RuntimeError as exc:
            logger.warning(f"Cannot schedule reconnect: {exc}")

    def _reconnect_due(self) -> None:
        self._reconnect = None
        self.connect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect is not None:
            self._reconnect.cancel()
            self._reconnect = None

    def send(self, name: MessageName | str, payload: Any = None) -> bool:
        socket = self._socket
        if self.state is not ConnectionState.OPEN or socket is None:
            return False
        return self._spawn(self._send(socket, encode(name, payload, self._style)))

    async def _send(self, socket: LiveSocket, text: str) -> None:
        try:
            await socket.send(text)
        except Exception as exc:
            logger.warning(f"Live send failed: {exc!r}")

    def close(self) -> None:
        self._manually_closed = True
        self._cancel_reconnect()
        socket = self._socket
        self._socket = None
        self._generation += 1
        self.state = ConnectionState.DISCONNECTED
        if socket is not None:
            self._spawn(self._close_socket(socket))

    async def _close_socket(self, socket: LiveSocket) -> None:
        try:
            await socket.close()
        except Exception as exc:
            logger.debug(f"Ignoring error while closing live socket: {exc!r}")

    def reset(self) -> None:
        self._manually_closed = False

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import aiohttp


class AiohttpSocket:
    def __init__(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        self._ws = ws

    async def send(self, text: str) -> None:
        await self._ws.send_str(text)

    async def close(self) -> None:
        await self._ws.close()

    async def __aiter__(self) -> AsyncIterator[str | bytes]:
        async for msg in self._ws:
            if msg.type is aiohttp.WSMsgType.TEXT:
                yield msg.data
            elif msg.type is aiohttp.WSMsgType.BINARY:
                yield msg.data
            elif msg.type is aiohttp.WSMsgType.ERROR:
                raise self._ws.exception() or ConnectionError("websocket error")


class AiohttpDialer:
    def __init__(self, heartbeat_sec: float | None = None) -> None:
        self.heartbeat_sec = heartbeat_sec

    @asynccontextmanager
    async def __call__(self, url: str) -> AsyncIterator[AiohttpSocket]:
        async with aiohttp.ClientSession() as session:
            async with session.ws_connect(url, heartbeat=self.heartbeat_sec) as ws:
                yield AiohttpSocket(ws)

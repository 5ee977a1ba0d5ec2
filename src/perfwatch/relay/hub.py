from __future__ import annotations

import asyncio
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from fastapi.websockets import WebSocketState
from loguru import logger

from perfwatch.live.messages import EnvelopeStyle, MessageName, decode, encode

if TYPE_CHECKING:
    from fastapi import WebSocket


@dataclass
class Subscriber:
    id: str
    websocket: "WebSocket"
    connected_at: float = field(default_factory=time.time)


class RelayHub:
    """Fans ingested batches out to every open subscriber, in ingest order.

    No acknowledgement and no replay: a subscriber that is not connected at
    the moment of a broadcast misses that batch. Batches enter only through
    :meth:`ingest` (the HTTP route); `metrics_batch` frames on a socket are
    acknowledged in the log but never rebroadcast.
    """

    def __init__(self, accumulator_size: int = 10_000, clock: Callable[[], float] | None = None) -> None:
        self.accumulated: deque[dict[str, Any]] = deque(maxlen=accumulator_size)
        self.ingested_batches = 0
        self._clock = clock or (lambda: time.time() * 1000.0)
        self._subscribers: dict[str, Subscriber] = {}
        self._ingest_lock = asyncio.Lock()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def subscribe(self, websocket: "WebSocket") -> str:
        await websocket.accept()
        subscriber_id = uuid.uuid4().hex
        self._subscribers[subscriber_id] = Subscriber(id=subscriber_id, websocket=websocket)
        logger.info(f"Client connected to WebSocket ({subscriber_id})")
        await self._send(subscriber_id, encode(MessageName.HELLO, "connected", EnvelopeStyle.TYPE))
        return subscriber_id

    def unsubscribe(self, subscriber_id: str) -> None:
        if self._subscribers.pop(subscriber_id, None) is not None:
            logger.info(f"Client disconnected ({subscriber_id})")

    async def ingest(self, batch: list[dict[str, Any]]) -> int:
        # one batch is fully fanned out before the next starts
        async with self._ingest_lock:
            self.accumulated.extend(batch)
            self.ingested_batches += 1
            sent = await self.broadcast(encode(MessageName.METRICS, batch, EnvelopeStyle.TYPE))
        logger.debug(f"Relayed batch of {len(batch)} metrics to {sent} subscribers")
        return sent

    async def ping_all(self) -> int:
        return await self.broadcast(encode(MessageName.PING, {"ts": self._clock()}, EnvelopeStyle.TYPE))

    async def broadcast(self, text: str) -> int:
        results = await asyncio.gather(*(self._send(subscriber_id, text) for subscriber_id in list(self._subscribers)))
        return sum(1 for ok in results if ok)

    async def _send(self, subscriber_id: str, text: str) -> bool:
        subscriber = self._subscribers.get(subscriber_id)
        if subscriber is None:
            return False
        if subscriber.websocket.client_state is not WebSocketState.CONNECTED:
            return False
        try:
            await subscriber.websocket.send_text(text)
        except Exception as exc:
            logger.warning(f"Dropping subscriber {subscriber_id} after failed send: {exc!r}")
            self.unsubscribe(subscriber_id)
            return False
        return True

    async def handle_text(self, subscriber_id: str, raw: str | bytes) -> None:
        envelope = decode(raw)
        if envelope is None:
            logger.debug(f"Dropping unparseable message from {subscriber_id}")
            return
        if envelope.matches(MessageName.METRICS_BATCH):
            size = len(envelope.payload) if isinstance(envelope.payload, list) else 0
            logger.debug(f"Live batch of {size} metrics from {subscriber_id}; ingestion happens over HTTP")
            return
        if envelope.matches(MessageName.PING):
            await self._send(subscriber_id, encode(MessageName.PONG, {"ts": self._clock()}, EnvelopeStyle.TYPE))
            return
        if envelope.matches(MessageName.HELLO):
            logger.info(f"Collector hello from {subscriber_id}: {envelope.payload!r}")
            return
        logger.debug(f"Ignoring {envelope.name!r} message from {subscriber_id}")

    def get_stats(self) -> dict[str, Any]:
        return {
            "subscribers": len(self._subscribers),
            "accumulated": len(self.accumulated),
            "batches": self.ingested_batches,
        }

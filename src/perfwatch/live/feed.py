from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from loguru import logger

from perfwatch.config import FeedConfig
from perfwatch.live.connection import ConnectionState, Dialer, LiveConnection
from perfwatch.live.dialer import AiohttpDialer
from perfwatch.live.messages import Envelope, EnvelopeStyle, MessageName
from perfwatch.metrics import EventType, MetricEvent, coerce_events
from perfwatch.runtime import AsyncioScheduler, Scheduler


@dataclass(frozen=True, slots=True)
class LiveSummary:
    avg_latency: float
    error_rate: float
    total_requests: int


class LiveFeed:
    """Subscriber side of the relay: a bounded recent-events view plus running request counts.

    The failure rate is always derived from the raw ``total_failures`` and
    ``total_requests`` counters, never updated incrementally from a previous
    percentage.
    """

    def __init__(
        self,
        config: FeedConfig | None = None,
        scheduler: Scheduler | None = None,
        dialer: Dialer | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.config = config or FeedConfig()
        self.events: deque[MetricEvent] = deque(maxlen=self.config.max_events)
        self.total_requests = 0
        self.total_failures = 0
        self.last_batch_latency = 0.0
        self.connection = LiveConnection(
            url=self.config.url,
            scheduler=scheduler or AsyncioScheduler(),
            dialer=dialer or AiohttpDialer(),
            reconnect_interval_sec=self.config.reconnect_interval_sec,
            clock=clock or (lambda: time.time() * 1000.0),
            on_message=self._on_message,
            style=EnvelopeStyle.TYPE,
        )

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    def start(self) -> None:
        self.connection.reset()
        self.connection.connect()

    def stop(self) -> None:
        self.connection.close()

    def _on_message(self, envelope: Envelope) -> None:
        if envelope.matches(MessageName.METRICS):
            if not isinstance(envelope.payload, list):
                logger.debug("Ignoring metrics message without a batch")
                return
            self.apply_batch(envelope.payload)
        elif envelope.matches(MessageName.HELLO):
            logger.debug(f"Relay hello: {envelope.payload!r}")

    def apply_batch(self, batch: Iterable[MetricEvent | dict[str, Any]]) -> None:
        events = coerce_events(batch)
        self.events.extendleft(reversed(events))
        requests = [e for e in events if e.type is EventType.API_REQUEST]
        if not requests:
            return
        self.total_requests += len(requests)
        self.total_failures += sum(1 for e in requests if not e.success)
        self.last_batch_latency = sum(e.latency for e in requests) / len(requests)

    @property
    def summary(self) -> LiveSummary:
        rate = self.total_failures / self.total_requests * 100 if self.total_requests else 0.0
        return LiveSummary(
            avg_latency=self.last_batch_latency,
            error_rate=rate,
            total_requests=self.total_requests,
        )

    def snapshot(self) -> list[MetricEvent]:
        return list(self.events)

from __future__ import annotations

import random
import string
from collections import deque
from dataclasses import dataclass, replace
from typing import Any, Coroutine, Mapping

from loguru import logger

from perfwatch.collector.delivery import Delivery, DeliveryResult, Failed, HttpDelivery
from perfwatch.config import CollectorConfig
from perfwatch.live import AiohttpDialer, Dialer, LiveConnection, MessageName
from perfwatch.metrics import Batch, EventType, MetricEvent, coerce_events
from perfwatch.runtime import AsyncioScheduler, CancelToken, Platform, ProcessPlatform, Scheduler, error_info

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _random_suffix() -> str:
    return "".join(random.choices(_ID_ALPHABET, k=9))


def new_session_id(now_ms: float) -> str:
    return f"session_{int(now_ms)}_{_random_suffix()}"


def new_request_id(now_ms: float) -> str:
    return f"req_{int(now_ms)}_{_random_suffix()}"


@dataclass(slots=True)
class Session:
    session_id: str
    start_time: float
    request_count: int = 0
    error_count: int = 0


@dataclass(frozen=True, slots=True)
class CollectorSummary:
    session_id: str
    start_time: float
    total_requests: int
    total_errors: int
    metrics_collected: int
    retained: int


class RequestHandle:
    __slots__ = ("_collector", "endpoint", "method", "request_id", "started_at", "_ended")

    def __init__(
        self,
        collector: Collector,
        endpoint: str,
        method: str,
        request_id: str,
        started_at: float,
    ) -> None:
        self._collector = collector
        self.endpoint = endpoint
        self.method = method
        self.request_id = request_id
        self.started_at = started_at
        self._ended = False

    @property
    def ended(self) -> bool:
        return self._ended

    def end(self, status: int | None, error: BaseException | str | None = None) -> MetricEvent | None:
        if self._ended:
            logger.warning(f"Request {self.request_id} already ended; ignoring repeated end()")
            return None
        self._ended = True
        return self._collector._finish_request(self, status, error)


class Collector:
    """Buffers metric events, flushes them in batches and keeps a bounded local window.

    All background work (flush timer, HTTP delivery, live channel) runs on the
    injected scheduler. Outside a running event loop the default scheduler
    refuses that work; it is dropped with a warning while tracking, flushing
    and retention keep working. A disabled collector never touches the
    scheduler and accepts every call as a no-op.

    The retention window is written through ``platform.persist`` inside
    :meth:`flush`, on the caller's thread.
    """

    def __init__(
        self,
        config: CollectorConfig | None = None,
        *,
        platform: Platform | None = None,
        scheduler: Scheduler | None = None,
        delivery: Delivery | None = None,
        dialer: Dialer | None = None,
    ) -> None:
        self.config = config or CollectorConfig()
        self.platform = platform or ProcessPlatform()
        self._scheduler = scheduler or AsyncioScheduler()
        self._delivery = delivery or HttpDelivery()
        self._dialer = dialer or AiohttpDialer()
        now = self.platform.now()
        self.session = Session(session_id=new_session_id(now), start_time=now)
        self.live: LiveConnection | None = None
        self.last_delivery: DeliveryResult | None = None
        self._queue: list[MetricEvent] = []
        self._retention: deque[MetricEvent] = deque(maxlen=self.config.max_local_storage)
        self._retention_loaded = False
        self._flush_timer: CancelToken | None = None
        self._unsubscribe_errors: Any = None
        self._inflight = 0
        self._delivery_closed = False
        self._destroyed = False
        if self.config.enabled:
            self._start_background()

    @property
    def enabled(self) -> bool:
        return self.config.enabled and not self._destroyed

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    def configure(self, **options: Any) -> CollectorConfig:
        self.config = self.config.merged(options)
        self._retention = deque(self._retention, maxlen=self.config.max_local_storage)
        self._stop_timer()
        self._stop_error_observer()
        if self.enabled:
            self._start_background()
        else:
            self.close_live()
        return self.config

    def _start_background(self) -> None:
        if not self._retention_loaded:
            self._load_retention()
        self._arm_flush_timer()
        if self._unsubscribe_errors is None:
            self._unsubscribe_errors = self.platform.observe_unhandled_errors(self._on_unhandled_error)
        self._sync_live()

    def _load_retention(self) -> None:
        self._retention_loaded = True
        try:
            stored = self.platform.retrieve(self.config.storage_key)
        except Exception as exc:
            logger.error(f"Failed to read stored metrics, starting empty: {exc!r}")
            stored = None
        if not isinstance(stored, list):
            stored = []
        self._retention = deque(coerce_events(stored), maxlen=self.config.max_local_storage)

    def _sync_live(self) -> None:
        url = self.config.live_url
        if self.live is not None and self.live.url != url:
            self.live.close()
            self.live = None
        if url is None:
            return
        if self.live is None:
            self.live = LiveConnection(
                url=url,
                scheduler=self._scheduler,
                dialer=self._dialer,
                reconnect_interval_sec=self.config.reconnect_interval_sec,
                clock=self.platform.now,
                session_id=self.session.session_id,
            )
        else:
            self.live.reconnect_interval_sec = self.config.reconnect_interval_sec
            self.live.reset()
        self.live.connect()

    def _arm_flush_timer(self) -> None:
        try:
            self._flush_timer = self._scheduler.call_later(self.config.flush_interval_sec, self._on_flush_timer)
        except RuntimeError as exc:
            self._flush_timer = None
            logger.warning(f"Flush timer unavailable, batches flush on size or flush() only: {exc}")

    def _on_flush_timer(self) -> None:
        self._flush_timer = None
        if self._queue:
            self.flush()
        if self.enabled:
            self._arm_flush_timer()

    def _stop_timer(self) -> None:
        if self._flush_timer is not None:
            self._flush_timer.cancel()
            self._flush_timer = None

    def _stop_error_observer(self) -> None:
        if self._unsubscribe_errors is not None:
            self._unsubscribe_errors()
            self._unsubscribe_errors = None

    def _on_unhandled_error(self, info: Mapping[str, Any]) -> None:
        self.track_error(info)

    def track(self, event: MetricEvent | Mapping[str, Any]) -> MetricEvent | None:
        if not self.enabled:
            return None
        normalized = self._normalize(event)
        self._queue.append(normalized)
        if len(self._queue) >= self.config.batch_size:
            self.flush()
        return normalized

    def _normalize(self, event: MetricEvent | Mapping[str, Any]) -> MetricEvent:
        base = event if isinstance(event, MetricEvent) else MetricEvent.from_dict(event)
        context = self.platform.context()
        return replace(
            base,
            session_id=self.session.session_id,
            timestamp=base.timestamp if base.timestamp is not None else self.platform.now(),
            user_agent=base.user_agent or context.user_agent,
            url=base.url if base.url is not None else context.url,
        )

    def track_request(self, endpoint: str, method: str = "GET") -> RequestHandle:
        now = self.platform.now()
        return RequestHandle(self, endpoint, method.upper(), new_request_id(now), now)

    def _finish_request(
        self,
        handle: RequestHandle,
        status: int | None,
        error: BaseException | str | None,
    ) -> MetricEvent | None:
        if not self.enabled:
            return None
        now = self.platform.now()
        error_text = str(error) if error is not None else None
        event = MetricEvent(
            type=EventType.API_REQUEST,
            timestamp=now,
            endpoint=handle.endpoint,
            method=handle.method,
            status=status,
            duration=max(0.0, now - handle.started_at),
            error=error_text,
            memory_usage=self.platform.memory_percent(),
            request_id=handle.request_id,
        )
        self.session.request_count += 1
        if error_text is not None or (status is not None and status >= 400):
            self.session.error_count += 1
        return self.track(event)

    def track_error(self, error: BaseException | Mapping[str, Any]) -> MetricEvent | None:
        if not self.enabled:
            return None
        data = dict(error_info(error)) if isinstance(error, BaseException) else dict(error)
        kind = data.pop("type", None)
        if kind is not None and kind != EventType.ERROR.value:
            data.setdefault("errorType", kind)
        data["type"] = EventType.ERROR.value
        data["severity"] = "error"
        data["timestamp"] = self.platform.now()
        self.session.error_count += 1
        return self.track(data)

    def flush(self) -> Batch:
        if not self._queue:
            return ()
        batch: Batch = tuple(self._queue)
        self._queue = []
        self._retain(batch)
        if self.live is not None:
            self.live.send(MessageName.METRICS_BATCH, [e.to_dict() for e in batch])
        endpoint = self.config.endpoint
        if endpoint:
            self._inflight += 1
            if not self._spawn(self._deliver(endpoint, batch)):
                self._inflight -= 1
        return batch

    def _retain(self, batch: Batch) -> None:
        self._retention.extend(batch)
        self._persist_retention()

    def _persist_retention(self) -> None:
        try:
            self.platform.persist(self.config.storage_key, [e.to_dict() for e in self._retention])
        except Exception as exc:
            logger.error(f"Failed to store metrics: {exc!r}")

    async def _deliver(self, endpoint: str, batch: Batch) -> None:
        try:
            result = await self._delivery.deliver(endpoint, batch)
        except Exception as exc:
            logger.error(f"Metrics delivery to {endpoint} raised: {exc!r}")
            result = None
        finally:
            self._inflight -= 1
        if result is not None:
            self._record_delivery(endpoint, result)
        if self._destroyed and self._inflight == 0:
            await self._close_delivery()

    def _record_delivery(self, endpoint: str, result: DeliveryResult) -> None:
        self.last_delivery = result
        if isinstance(result, Failed):
            logger.warning(
                f"PerfWatch failed to POST {result.count} metrics to {endpoint} "
                f"({result.reason.value}): {result.detail}"
            )
        else:
            logger.debug(f"Delivered {result.count} metrics to {endpoint} (HTTP {result.status_code})")

    async def _close_delivery(self) -> None:
        if self._delivery_closed:
            return
        self._delivery_closed = True
        await self._delivery.aclose()

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> bool:
        try:
            self._scheduler.spawn(coro)
        except RuntimeError as exc:
            coro.close()
            logger.warning(f"Dropping background work, scheduler unavailable: {exc}")
            return False
        return True

    def get_summary(self) -> CollectorSummary:
        return CollectorSummary(
            session_id=self.session.session_id,
            start_time=self.session.start_time,
            total_requests=self.session.request_count,
            total_errors=self.session.error_count,
            metrics_collected=len(self._queue),
            retained=len(self._retention),
        )

    def retention_snapshot(self) -> list[MetricEvent]:
        return list(self._retention)

    def clear_retention(self) -> None:
        self._retention.clear()
        try:
            self.platform.remove(self.config.storage_key)
        except Exception as exc:
            logger.error(f"Failed to remove stored metrics: {exc!r}")

    def close_live(self) -> None:
        if self.live is not None:
            self.live.close()

    def destroy(self) -> Batch:
        if self._destroyed:
            return ()
        self._destroyed = True
        self._stop_timer()
        self.close_live()
        self._stop_error_observer()
        batch = self.flush()
        if self._inflight == 0 and self.config.enabled:
            self._spawn(self._close_delivery())
        return batch

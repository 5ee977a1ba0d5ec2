from __future__ import annotations

import math
from datetime import datetime, tzinfo
from typing import Any, Iterable, Mapping, Sequence

import numpy as np

from perfwatch.metrics.models import (
    Distribution,
    DistributionPoint,
    EventType,
    Gauges,
    Heatmap,
    HeatmapCell,
    MetricEvent,
    Summary,
    TrendPoint,
    Trends,
)

EventLike = MetricEvent | Mapping[str, Any]

NAMED_PERCENTILES = (50, 90, 95, 99)
TREND_WINDOW = 20
TREND_DIMENSIONS = ("memory_usage", "latency")
GAUGE_WINDOW = 50
UNKNOWN_ENDPOINT = "unknown"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def coerce_events(events: Iterable[EventLike] | None) -> list[MetricEvent]:
    coerced: list[MetricEvent] = []
    for item in events or ():
        if isinstance(item, MetricEvent):
            coerced.append(item)
        elif isinstance(item, Mapping):
            coerced.append(MetricEvent.from_dict(item))
    return coerced


def api_requests(events: Iterable[EventLike] | None) -> list[MetricEvent]:
    return [e for e in coerce_events(events) if e.type is EventType.API_REQUEST]


def _endpoint_key(event: MetricEvent) -> str:
    return event.endpoint if event.endpoint is not None else UNKNOWN_ENDPOINT


def summarize(events: Iterable[EventLike] | None) -> Summary:
    requests = api_requests(events)
    total = len(requests)
    if total == 0:
        return Summary(avg_latency=0, failure_rate=0.0, total_requests=0, active_endpoints=0)
    failed = sum(1 for e in requests if not e.success)
    total_latency = sum(e.latency for e in requests)
    return Summary(
        avg_latency=round_half_up(total_latency / total),
        failure_rate=float(f"{failed / total * 100:.2f}"),
        total_requests=total,
        active_endpoints=len({_endpoint_key(e) for e in requests}),
    )


def sorted_latencies(events: Iterable[EventLike] | None) -> np.ndarray:
    return np.sort(np.asarray([e.latency for e in api_requests(events)], dtype=float))


def percentile(latencies: Sequence[float] | np.ndarray, p: float) -> float:
    """Nearest-rank percentile over latencies already sorted ascending.

    The rank is ``ceil(p / 100 * n) - 1`` clamped into the array, so p0 is the
    minimum and p100 the maximum. No interpolation between samples.
    """
    n = len(latencies)
    if n == 0:
        return 0.0
    index = math.ceil(p / 100 * n) - 1
    index = min(max(index, 0), n - 1)
    return float(latencies[index])


def distribution(events: Iterable[EventLike] | None) -> Distribution:
    latencies = sorted_latencies(events)
    points = [
        DistributionPoint(percentile=p, latency=round_half_up(percentile(latencies, p)))
        for p in range(0, 101, 5)
    ]
    named = {f"p{p}": round_half_up(percentile(latencies, p)) for p in NAMED_PERCENTILES}
    return Distribution(points=points, percentiles=named)


def _local_hour(timestamp_ms: float, tz: tzinfo | None) -> int | None:
    try:
        return datetime.fromtimestamp(timestamp_ms / 1000.0, tz).hour
    except (OverflowError, OSError, ValueError):
        return None


def heatmap(events: Iterable[EventLike] | None, tz: tzinfo | None = None) -> Heatmap:
    requests = api_requests(events)
    buckets: dict[tuple[str, int], list[float]] = {}
    for event in requests:
        if event.timestamp is None:
            continue
        hour = _local_hour(event.timestamp, tz)
        if hour is None:
            continue
        buckets.setdefault((_endpoint_key(event), hour), []).append(event.latency)
    cells = [
        HeatmapCell(
            endpoint=endpoint,
            hour=hour,
            count=len(latencies),
            avg_latency=round_half_up(sum(latencies) / len(latencies)),
        )
        for (endpoint, hour), latencies in buckets.items()
    ]
    endpoints = list(dict.fromkeys(_endpoint_key(e) for e in requests))
    return Heatmap(cells=cells, endpoints=endpoints)


def _dimension_value(event: MetricEvent, name: str) -> float:
    if name in MetricEvent.__dataclass_fields__ or name == "latency":
        value = getattr(event, name)
    else:
        value = event.extra.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def trends(
    events: Iterable[EventLike] | None,
    window: int = TREND_WINDOW,
    dimensions: Sequence[str] = TREND_DIMENSIONS,
) -> Trends:
    """Last ``window`` requests as one series per dimension.

    A dimension is a ``MetricEvent`` attribute (``latency`` included) or a key of
    its free-form payload; missing or non-numeric values plot as 0.
    """
    recent = api_requests(events)[-window:] if window > 0 else []
    return Trends(
        series={
            name: [TrendPoint(index=i, value=_dimension_value(e, name)) for i, e in enumerate(recent)]
            for name in dimensions
        }
    )


def gauges(events: Iterable[EventLike] | None, window: int = GAUGE_WINDOW) -> Gauges:
    requests = api_requests(events)
    recent = requests[-window:] if window > 0 else []
    if not recent:
        return Gauges(total_requests=len(requests), error_rate=0.0, avg_latency=0.0, memory_usage=0.0)
    errors = sum(1 for e in recent if not e.success)
    return Gauges(
        total_requests=len(requests),
        error_rate=errors / len(recent) * 100,
        avg_latency=float(np.mean([e.latency for e in recent])),
        memory_usage=recent[-1].memory_usage or 0.0,
    )

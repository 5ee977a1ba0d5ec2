from __future__ import annotations

from perfwatch.metrics.aggregator import (
    coerce_events,
    distribution,
    gauges,
    heatmap,
    percentile,
    summarize,
    trends,
)
from perfwatch.metrics.models import (
    Batch,
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

__all__ = [
    "Batch",
    "Distribution",
    "DistributionPoint",
    "EventType",
    "Gauges",
    "Heatmap",
    "HeatmapCell",
    "MetricEvent",
    "Summary",
    "TrendPoint",
    "Trends",
    "coerce_events",
    "distribution",
    "gauges",
    "heatmap",
    "percentile",
    "summarize",
    "trends",
]

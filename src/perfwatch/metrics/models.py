from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

import pandas as pd


class EventType(str, Enum):
    API_REQUEST = "api_request"
    ERROR = "error"
    NAVIGATION = "navigation"
    PAGE_LOAD = "pageLoad"
    RESOURCE = "resource"
    CUSTOM = "custom"

    @classmethod
    def coerce(cls, value: Any) -> EventType:
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.CUSTOM


_WIRE_FIELDS: Mapping[str, str] = {
    "type": "type",
    "timestamp": "timestamp",
    "sessionId": "session_id",
    "endpoint": "endpoint",
    "method": "method",
    "status": "status",
    "duration": "duration",
    "success": "success",
    "error": "error",
    "memoryUsage": "memory_usage",
    "requestId": "request_id",
    "userAgent": "user_agent",
    "url": "url",
}


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


@dataclass(frozen=True, slots=True)
class MetricEvent:
    type: EventType
    timestamp: float | None = None
    session_id: str = ""
    endpoint: str | None = None
    method: str | None = None
    status: int | None = None
    duration: float | None = None
    success: bool | None = None
    error: str | None = None
    memory_usage: float | None = None
    request_id: str | None = None
    user_agent: str | None = None
    url: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.duration is not None and self.duration < 0:
            object.__setattr__(self, "duration", 0.0)
        if self.memory_usage is not None:
            object.__setattr__(self, "memory_usage", min(100.0, max(0.0, self.memory_usage)))
        if self.type is EventType.API_REQUEST:
            ok = self.error is None and self.status is not None and 200 <= self.status < 400
            object.__setattr__(self, "success", ok)

    @property
    def latency(self) -> float:
        return self.duration or 0.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MetricEvent:
        if not isinstance(data, Mapping):
            return cls(type=EventType.CUSTOM)
        status = _number(data.get("status"))
        memory = _number(data.get("memoryUsage", data.get("memory_usage")))
        legacy_memory = data.get("memory")
        if memory is None and isinstance(legacy_memory, Mapping):
            memory = _number(legacy_memory.get("percentage"))
        success = data.get("success")
        extra = {k: v for k, v in data.items() if k not in _WIRE_FIELDS}
        return cls(
            type=EventType.coerce(data.get("type")),
            timestamp=_number(data.get("timestamp")),
            session_id=_text(data.get("sessionId", data.get("session_id"))) or "",
            endpoint=_text(data.get("endpoint")),
            method=_text(data.get("method")),
            status=int(status) if status is not None else None,
            duration=_number(data.get("duration")),
            success=success if isinstance(success, bool) else None,
            error=_text(data.get("error")),
            memory_usage=memory,
            request_id=_text(data.get("requestId", data.get("request_id"))),
            user_agent=_text(data.get("userAgent", data.get("user_agent"))),
            url=_text(data.get("url")),
            extra=extra,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {k: v for k, v in self.extra.items() if k not in _WIRE_FIELDS}
        for wire_name, attr in _WIRE_FIELDS.items():
            value = getattr(self, attr)
            if value is None or value == "":
                continue
            payload[wire_name] = value.value if isinstance(value, EventType) else value
        if self.type is EventType.API_REQUEST:
            payload.setdefault("error", None)
            payload.setdefault("memoryUsage", None)
        return payload


Batch = tuple[MetricEvent, ...]


@dataclass(frozen=True, slots=True)
class Summary:
    avg_latency: int
    failure_rate: float
    total_requests: int
    active_endpoints: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "avgLatency": self.avg_latency,
            "failureRate": f"{self.failure_rate:.2f}",
            "totalRequests": self.total_requests,
            "activeEndpoints": self.active_endpoints,
        }


@dataclass(frozen=True, slots=True)
class DistributionPoint:
    percentile: int
    latency: int


@dataclass(frozen=True, slots=True)
class Distribution:
    points: list[DistributionPoint]
    percentiles: Mapping[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "distribution": [{"percentile": p.percentile, "latency": p.latency} for p in self.points],
            "percentiles": dict(self.percentiles),
        }


@dataclass(frozen=True, slots=True)
class HeatmapCell:
    endpoint: str
    hour: int
    count: int
    avg_latency: int


@dataclass(frozen=True, slots=True)
class Heatmap:
    cells: list[HeatmapCell]
    endpoints: list[str]

    def to_frame(self) -> pd.DataFrame:
        """Endpoint x hour matrix of average latency, NaN where no traffic was seen."""
        hours = list(range(24))
        if not self.cells:
            return pd.DataFrame(index=pd.Index(self.endpoints, name="endpoint"), columns=hours, dtype=float)
        frame = pd.DataFrame(
            [{"endpoint": c.endpoint, "hour": c.hour, "avg_latency": float(c.avg_latency)} for c in self.cells]
        )
        matrix = frame.pivot(index="endpoint", columns="hour", values="avg_latency")
        return matrix.reindex(index=self.endpoints, columns=hours)

    def to_dict(self) -> dict[str, Any]:
        return {
            "heatmapData": [
                {"endpoint": c.endpoint, "hour": c.hour, "avgLatency": c.avg_latency, "count": c.count}
                for c in self.cells
            ],
            "endpoints": list(self.endpoints),
        }


@dataclass(frozen=True, slots=True)
class TrendPoint:
    index: int
    value: float


@dataclass(frozen=True, slots=True)
class Trends:
    """One indexed series per requested dimension, keyed by dimension name."""

    series: Mapping[str, list[TrendPoint]]

    @property
    def memory(self) -> list[TrendPoint]:
        return list(self.series.get("memory_usage", []))

    @property
    def latency(self) -> list[TrendPoint]:
        return list(self.series.get("latency", []))


@dataclass(frozen=True, slots=True)
class Gauges:
    total_requests: int
    error_rate: float
    avg_latency: float
    memory_usage: float

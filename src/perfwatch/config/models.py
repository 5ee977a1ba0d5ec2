from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Mapping

_OPTION_ALIASES: Mapping[str, str] = {
    "batchSize": "batch_size",
    "flushInterval": "flush_interval_ms",
    "flushIntervalMs": "flush_interval_ms",
    "liveUrl": "live_url",
    "wsUrl": "live_url",
    "maxLocalStorage": "max_local_storage",
    "reconnectInterval": "reconnect_interval_ms",
    "reconnectIntervalMs": "reconnect_interval_ms",
}


@dataclass(frozen=True, slots=True)
class CollectorConfig:
    batch_size: int = 50
    flush_interval_ms: float = 5000.0
    endpoint: str | None = None
    live_url: str | None = None
    enabled: bool = True
    max_local_storage: int = 1000
    reconnect_interval_ms: float = 2000.0
    storage_key: str = "perfwatch_metrics"

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            msg = f"batch_size must be positive, got {self.batch_size}"
            raise ValueError(msg)
        if self.max_local_storage < 0:
            msg = f"max_local_storage must not be negative, got {self.max_local_storage}"
            raise ValueError(msg)
        if self.flush_interval_ms < 0 or self.reconnect_interval_ms < 0:
            msg = "intervals must not be negative"
            raise ValueError(msg)

    @property
    def flush_interval_sec(self) -> float:
        return max(1000.0, self.flush_interval_ms) / 1000.0

    @property
    def reconnect_interval_sec(self) -> float:
        return self.reconnect_interval_ms / 1000.0

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> CollectorConfig:
        return cls().merged(options)

    def merged(self, options: Mapping[str, Any]) -> CollectorConfig:
        known = {f.name for f in fields(self)}
        changes: dict[str, Any] = {}
        for key, value in options.items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in known:
                msg = f"Unknown collector option: {key}"
                raise ValueError(msg)
            if value is None and name not in ("endpoint", "live_url"):
                continue
            changes[name] = value
        return replace(self, **changes)


@dataclass(frozen=True, slots=True)
class FeedConfig:
    url: str = "ws://localhost:4000"
    reconnect_interval_ms: float = 1500.0
    max_events: int = 200

    @property
    def reconnect_interval_sec(self) -> float:
        return self.reconnect_interval_ms / 1000.0


@dataclass(frozen=True, slots=True)
class RelayConfig:
    host: str = "127.0.0.1"
    port: int = 4000
    ingest_path: str = "/api/metrics"
    accumulator_size: int = 10_000
    ping_interval_sec: float = 0.0
    cors_origins: tuple[str, ...] = ("*",)


@dataclass(frozen=True, slots=True)
class AlertThresholds:
    avg_latency_ms: float = 1000.0
    error_rate_pct: float = 10.0
    memory_usage_pct: float = 80.0

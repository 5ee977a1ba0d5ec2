from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from perfwatch.config import AlertThresholds
from perfwatch.metrics import Gauges


class AlertSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True, slots=True)
class Alert:
    id: str
    title: str
    message: str
    severity: AlertSeverity


def _safe(value: float) -> float:
    if value is None or math.isnan(value):
        return 0.0
    return value


def latency_alert(gauges: Gauges, thresholds: AlertThresholds) -> Alert | None:
    latency = _safe(gauges.avg_latency)
    if latency <= thresholds.avg_latency_ms:
        return None
    return Alert(
        id="latency-high",
        title="High Latency Detected",
        message=f"Average response time is {round(latency)}ms (Threshold: {thresholds.avg_latency_ms:g}ms)",
        severity=AlertSeverity.CRITICAL,
    )


def error_rate_alert(gauges: Gauges, thresholds: AlertThresholds) -> Alert | None:
    rate = _safe(gauges.error_rate)
    if rate <= thresholds.error_rate_pct:
        return None
    return Alert(
        id="error-rate-high",
        title="Critical Error Rate",
        message=f"Error rate has spiked to {rate:.1f}%",
        severity=AlertSeverity.CRITICAL,
    )


def memory_alert(gauges: Gauges, thresholds: AlertThresholds) -> Alert | None:
    usage = _safe(gauges.memory_usage)
    if usage <= thresholds.memory_usage_pct:
        return None
    return Alert(
        id="memory-high",
        title="High Memory Usage",
        message=f"Heap usage is at {usage:.1f}%",
        severity=AlertSeverity.WARNING,
    )


def evaluate_alerts(gauges: Gauges, thresholds: AlertThresholds | None = None) -> list[Alert]:
    thresholds = thresholds or AlertThresholds()
    alerts: list[Alert] = []
    for rule in (latency_alert, error_rate_alert, memory_alert):
        alert = rule(gauges, thresholds)
        if alert is not None:
            alerts.append(alert)
    return alerts

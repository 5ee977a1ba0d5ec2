from __future__ import annotations

from perfwatch.analysis import AlertSeverity, evaluate_alerts
from perfwatch.config import AlertThresholds
from perfwatch.metrics import Gauges


def test_no_alerts_within_thresholds() -> None:
    assert evaluate_alerts(Gauges(total_requests=10, error_rate=10.0, avg_latency=1000.0, memory_usage=80.0)) == []


def test_all_rules_fire() -> None:
    alerts = evaluate_alerts(Gauges(total_requests=10, error_rate=40.0, avg_latency=1500.4, memory_usage=91.25))
    assert [a.id for a in alerts] == ["latency-high", "error-rate-high", "memory-high"]
    assert alerts[0].message == "Average response time is 1500ms (Threshold: 1000ms)"
    assert alerts[1].message == "Error rate has spiked to 40.0%"
    assert alerts[2].severity is AlertSeverity.WARNING


def test_custom_thresholds() -> None:
    gauges = Gauges(total_requests=1, error_rate=0.0, avg_latency=150.0, memory_usage=0.0)
    alerts = evaluate_alerts(gauges, AlertThresholds(avg_latency_ms=100.0))
    assert [a.id for a in alerts] == ["latency-high"]
    assert alerts[0].severity is AlertSeverity.CRITICAL

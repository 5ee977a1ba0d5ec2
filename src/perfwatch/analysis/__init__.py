from __future__ import annotations

from perfwatch.analysis.alerts import Alert, AlertSeverity, evaluate_alerts

__all__ = ["Alert", "AlertSeverity", "evaluate_alerts"]

from __future__ import annotations

from perfwatch.config.models import AlertThresholds, CollectorConfig, FeedConfig, RelayConfig

__all__ = [
    "AlertThresholds",
    "CollectorConfig",
    "FeedConfig",
    "RelayConfig",
]

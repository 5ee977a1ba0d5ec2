from __future__ import annotations

from perfwatch.collector.collector import Collector, CollectorSummary, RequestHandle, Session
from perfwatch.collector.delivery import (
    Delivered,
    Delivery,
    DeliveryResult,
    Failed,
    FailureReason,
    HttpDelivery,
    post_batch,
)
from perfwatch.collector.instrument import TrackingTransport, instrumented_client

__all__ = [
    "Collector",
    "CollectorSummary",
    "Delivered",
    "Delivery",
    "DeliveryResult",
    "Failed",
    "FailureReason",
    "HttpDelivery",
    "RequestHandle",
    "Session",
    "TrackingTransport",
    "instrumented_client",
    "post_batch",
]

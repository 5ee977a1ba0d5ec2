from __future__ import annotations

import asyncio
import json
from typing import Callable

import httpx
import pytest

from perfwatch.collector import Delivered, Failed, FailureReason, HttpDelivery
from perfwatch.metrics import Batch, EventType, MetricEvent

ENDPOINT = "http://collector.test/api/metrics"

BATCH: Batch = (
    MetricEvent(type=EventType.API_REQUEST, endpoint="/a", status=200, duration=10.0, session_id="s"),
    MetricEvent(type=EventType.ERROR, extra={"message": "boom"}, session_id="s"),
)


def _deliver(handler: Callable[[httpx.Request], httpx.Response]) -> Delivered | Failed:
    async def run() -> Delivered | Failed:
        delivery = HttpDelivery(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        try:
            return await delivery.deliver(ENDPOINT, BATCH)
        finally:
            await delivery.aclose()

    return asyncio.run(run())


def test_posts_metrics_body() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(202)

    assert _deliver(handler) == Delivered(status_code=202, count=2)
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == ENDPOINT
    body = json.loads(request.content)
    assert [item["type"] for item in body["metrics"]] == ["api_request", "error"]
    assert body["metrics"][0]["sessionId"] == "s"


def test_non_success_status_is_a_failure() -> None:
    result = _deliver(lambda request: httpx.Response(503))
    assert isinstance(result, Failed)
    assert result.reason is FailureReason.STATUS
    assert result.detail == "HTTP 503"
    assert result.count == 2


@pytest.mark.parametrize(
    ("exc_type", "reason"),
    [
        (httpx.ConnectError, FailureReason.CONNECT),
        (httpx.ReadTimeout, FailureReason.TIMEOUT),
        (httpx.ReadError, FailureReason.READ),
        (httpx.RemoteProtocolError, FailureReason.OTHER),
    ],
)
def test_transport_errors_map_to_reasons(exc_type: type[httpx.TransportError], reason: FailureReason) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc_type("simulated", request=request)

    result = _deliver(handler)
    assert isinstance(result, Failed)
    assert result.reason is reason

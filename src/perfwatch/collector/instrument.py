from __future__ import annotations

from typing import Any

import httpx

from perfwatch.collector.collector import Collector


class TrackingTransport(httpx.AsyncBaseTransport):
    """Wraps another transport and records every request through ``Collector.track_request``.

    Latency is measured up to the response headers; transport errors are
    recorded with no status and re-raised unchanged.
    """

    def __init__(self, collector: Collector, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.collector = collector
        self.transport = transport or httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        handle = self.collector.track_request(request.url.path or "/", request.method)
        try:
            response = await self.transport.handle_async_request(request)
        except httpx.HTTPError as exc:
            handle.end(None, exc)
            raise
        handle.end(response.status_code)
        return response

    async def aclose(self) -> None:
        await self.transport.aclose()


def instrumented_client(
    collector: Collector,
    transport: httpx.AsyncBaseTransport | None = None,
    **kwargs: Any,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=TrackingTransport(collector, transport), **kwargs)

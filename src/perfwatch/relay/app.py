from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import Any, AsyncIterator

import uvicorn
from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel

from perfwatch.config import RelayConfig
from perfwatch.relay.hub import RelayHub


class IngestRequest(BaseModel):
    metrics: list[dict[str, Any]]


class IngestResponse(BaseModel):
    ok: bool = True


async def _heartbeat(hub: RelayHub, interval_sec: float) -> None:
    while True:
        await asyncio.sleep(interval_sec)
        await hub.ping_all()


def create_app(config: RelayConfig | None = None, hub: RelayHub | None = None) -> FastAPI:
    config = config or RelayConfig()
    hub = hub or RelayHub(accumulator_size=config.accumulator_size)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        heartbeat: asyncio.Task[None] | None = None
        if config.ping_interval_sec > 0:
            heartbeat = asyncio.create_task(_heartbeat(hub, config.ping_interval_sec))
        logger.info(f"PerfWatch relay accepting batches on {config.ingest_path}")
        yield
        if heartbeat is not None:
            heartbeat.cancel()
            with suppress(asyncio.CancelledError):
                await heartbeat

    app = FastAPI(title="PerfWatch Relay", lifespan=lifespan)
    app.state.hub = hub
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.post(config.ingest_path, response_model=IngestResponse)
    async def ingest(body: IngestRequest) -> IngestResponse:
        await hub.ingest(body.metrics)
        return IngestResponse()

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"ok": True, **hub.get_stats()}

    async def live(websocket: WebSocket) -> None:
        subscriber_id = await hub.subscribe(websocket)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes") or b""
                await hub.handle_text(subscriber_id, raw)
        finally:
            hub.unsubscribe(subscriber_id)

    app.add_api_websocket_route("/", live)
    app.add_api_websocket_route("/ws", live)
    return app


def serve(config: RelayConfig) -> None:
    uvicorn.run(create_app(config), host=config.host, port=config.port, log_level="info")

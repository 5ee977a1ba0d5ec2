from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import httpx

from perfwatch.metrics import Batch


class FailureReason(str, Enum):
    TIMEOUT = "timeout"
    CONNECT = "connect"
    READ = "read"
    STATUS = "status"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class Delivered:
    status_code: int
    count: int


@dataclass(frozen=True, slots=True)
class Failed:
    reason: FailureReason
    detail: str
    count: int


DeliveryResult = Delivered | Failed


class Delivery(Protocol):
    async def deliver(self, endpoint: str, batch: Batch) -> DeliveryResult:
        ...

    async def aclose(self) -> None:
        ...


def batch_body(batch: Batch) -> dict[str, list[dict[str, object]]]:
    return {"metrics": [event.to_dict() for event in batch]}


async def post_batch(
    client: httpx.AsyncClient,
    endpoint: str,
    batch: Batch,
    timeout_sec: float,
) -> DeliveryResult:
    try:
        resp = await client.post(endpoint, json=batch_body(batch), timeout=timeout_sec)
    except httpx.TimeoutException as exc:
        return Failed(FailureReason.TIMEOUT, repr(exc), len(batch))
    except httpx.ConnectError as exc:
        return Failed(FailureReason.CONNECT, repr(exc), len(batch))
    except httpx.ReadError as exc:
        return Failed(FailureReason.READ, repr(exc), len(batch))
    except httpx.HTTPError as exc:
        return Failed(FailureReason.OTHER, repr(exc), len(batch))
    if not resp.is_success:
        return Failed(FailureReason.STATUS, f"HTTP {resp.status_code}", len(batch))
    return Delivered(status_code=resp.status_code, count=len(batch))


class HttpDelivery:
    """POSTs ``{"metrics": [...]}`` and reports the outcome as a DeliveryResult instead of raising."""

    def __init__(
        self,
        timeout_sec: float = 10.0,
        base_url: str = "",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.timeout_sec = timeout_sec
        self.base_url = base_url
        self._client = client

    async def deliver(self, endpoint: str, batch: Batch) -> DeliveryResult:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url)
        return await post_batch(self._client, endpoint, batch, self.timeout_sec)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

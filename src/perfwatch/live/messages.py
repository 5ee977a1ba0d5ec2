from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any


class MessageName(str, Enum):
    HELLO = "hello"
    PING = "ping"
    PONG = "pong"
    METRICS = "metrics"
    METRICS_BATCH = "metrics_batch"


class EnvelopeStyle(str, Enum):
    # collector side speaks {"event", "payload"}, relay side {"type", "data"}
    EVENT = "event"
    TYPE = "type"


@dataclass(frozen=True, slots=True)
class Envelope:
    name: str
    payload: Any = None

    def matches(self, name: MessageName) -> bool:
        return self.name == name.value


def encode(name: MessageName | str, payload: Any = None, style: EnvelopeStyle = EnvelopeStyle.EVENT) -> str:
    value = name.value if isinstance(name, MessageName) else name
    if style is EnvelopeStyle.TYPE:
        return json.dumps({"type": value, "data": payload})
    return json.dumps({"event": value, "payload": payload})


def decode(raw: str | bytes) -> Envelope | None:
    """Parse one live-channel frame; anything that is not a named JSON object yields None."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    name = data.get("event") or data.get("type") or data.get("command")
    if not isinstance(name, str):
        return None
    payload = data["payload"] if "payload" in data else data.get("data")
    return Envelope(name=name, payload=payload)

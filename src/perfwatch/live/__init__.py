from __future__ import annotations

from perfwatch.live.connection import ConnectionState, Dialer, LiveConnection, LiveSocket
from perfwatch.live.dialer import AiohttpDialer
from perfwatch.live.feed import LiveFeed, LiveSummary
from perfwatch.live.messages import Envelope, EnvelopeStyle, MessageName, decode, encode

__all__ = [
    "AiohttpDialer",
    "ConnectionState",
    "Dialer",
    "Envelope",
    "EnvelopeStyle",
    "LiveConnection",
    "LiveFeed",
    "LiveSocket",
    "LiveSummary",
    "MessageName",
    "decode",
    "encode",
]

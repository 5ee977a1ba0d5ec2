from __future__ import annotations

from perfwatch.relay.app import IngestRequest, create_app, serve
from perfwatch.relay.hub import RelayHub, Subscriber

__all__ = ["IngestRequest", "RelayHub", "Subscriber", "create_app", "serve"]

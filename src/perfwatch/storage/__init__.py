from __future__ import annotations

from pathlib import Path

from perfwatch.storage.duckdb_store import KeyValueStore


def default_storage() -> KeyValueStore:
    return KeyValueStore(Path(".perfwatch/perfwatch.duckdb"))


__all__ = ["KeyValueStore", "default_storage"]

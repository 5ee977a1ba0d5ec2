from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import duckdb
import pandas as pd

from perfwatch.metrics import MetricEvent, coerce_events


@dataclass(slots=True)
class KeyValueStore:
    db_path: Path

    def __post_init__(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> duckdb.DuckDBPyConnection:
        return duckdb.connect(str(self.db_path))

    def _init_schema(self) -> None:
        with self._connect() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT,
                    updated_at TIMESTAMP
                );
                """
            )

    def put(self, key: str, value: str) -> None:
        with self._connect() as con:
            con.execute(
                "INSERT OR REPLACE INTO kv_store VALUES (?, ?, ?)",
                [key, value, datetime.now(timezone.utc).replace(tzinfo=None)],
            )

    def get(self, key: str) -> str | None:
        with self._connect() as con:
            row = con.execute(
                "SELECT value FROM kv_store WHERE key = ?",
                [key],
            ).fetchone()
            if not row:
                return None
            return row[0]

    def delete(self, key: str) -> None:
        with self._connect() as con:
            con.execute("DELETE FROM kv_store WHERE key = ?", [key])

    def list_keys(self) -> pd.DataFrame:
        with self._connect() as con:
            return con.execute(
                "SELECT key, updated_at FROM kv_store ORDER BY updated_at DESC"
            ).fetchdf()

    def load_json(self, key: str) -> Any:
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return None

    def load_events(self, key: str) -> list[MetricEvent]:
        items = self.load_json(key)
        if not isinstance(items, list):
            return []
        return coerce_events(items)

    def load_events_frame(self, key: str) -> pd.DataFrame:
        return pd.DataFrame([e.to_dict() for e in self.load_events(key)])

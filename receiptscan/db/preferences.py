"""Persistent user preferences (region, language)."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from .schema import ensure_schema

_REGION_KEY = "region"
_LANGUAGE_KEY = "language"


class PreferencesDB:
    """Key/value preferences stored in the preferences table.

    Region changes only affect parses and aggregations made afterwards;
    stored amounts are never re-parsed.
    """

    def __init__(self, db_path: str | Path = "~/.config/receiptscan/receipts.db") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def get(self, key: str) -> str | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT value FROM preferences WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        conn = self._get_conn()
        conn.execute(
            """INSERT INTO preferences (key, value) VALUES (?, ?)
               ON CONFLICT(key) DO UPDATE SET value = excluded.value""",
            (key, value),
        )
        conn.commit()

    def get_region(self) -> str | None:
        return self.get(_REGION_KEY)

    def set_region(self, region: str) -> None:
        self.set(_REGION_KEY, region)

    def get_language(self) -> str | None:
        return self.get(_LANGUAGE_KEY)

    def set_language(self, language: str) -> None:
        self.set(_LANGUAGE_KEY, language)

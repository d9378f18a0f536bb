"""
History Repository — sqlite3-backed local cache.

Mirrors the full history list (newest first) so the session can keep
working when the primary backend is unavailable. Records are stored as
JSON; list order is kept in the `position` column.

All writes are transaction-wrapped: replace_all either lands
completely or not at all.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import List

_SCHEMA_PATH = Path(__file__).parent / "schema.sql"


class HistoryRepository:
    """
    Local history cache backed by sqlite3.

    Thread-safety: the owning HistoryStore serializes every call.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        schema_sql = _SCHEMA_PATH.read_text(encoding="utf-8")
        self._conn.executescript(schema_sql)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def load_all(self) -> List[dict]:
        """Return every cached record, newest first."""
        cursor = self._conn.execute(
            "SELECT record_json FROM draw_history ORDER BY position"
        )
        return [json.loads(row[0]) for row in cursor]

    def count(self) -> int:
        cursor = self._conn.execute("SELECT COUNT(*) FROM draw_history")
        return cursor.fetchone()[0]

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def replace_all(self, records: List[dict]) -> None:
        """
        Replace the cached list atomically.

        Records without an id are stored under a positional key so the
        cache never drops them.
        """
        now = datetime.now(timezone.utc).isoformat()
        with self._conn:
            self._conn.execute("DELETE FROM draw_history")
            for position, record in enumerate(records):
                record_id = str(record.get("id") or f"_pos_{position}")
                self._conn.execute(
                    """
                    INSERT INTO draw_history
                        (id, position, date, record_json, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        record_id,
                        position,
                        str(record.get("date") or ""),
                        json.dumps(record, ensure_ascii=False),
                        now,
                    ),
                )

    def close(self) -> None:
        self._conn.close()

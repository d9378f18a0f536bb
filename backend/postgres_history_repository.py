"""
PostgreSQL History Backend.

Drop-in replacement for the JSON file backend.
Same load_all/replace_all interface, PostgreSQL storage via pg8000.

Stateless: no in-memory caching. Every read hits the DB.
"""

from __future__ import annotations

import json
from typing import List

import pg8000.native

_INIT_SQL = """
CREATE TABLE IF NOT EXISTS draw_history (
    id          TEXT PRIMARY KEY,
    position    INTEGER NOT NULL,
    date        TEXT NOT NULL DEFAULT '',
    record      JSONB NOT NULL,
    updated_at  TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_draw_history_position
    ON draw_history(position);
"""


def parse_database_url(database_url: str) -> dict:
    """
    Split a postgres:// URL into pg8000 connection kwargs.

    Manual parser: urlparse chokes on special chars ([], @) in passwords.
    """
    url = database_url.split("://", 1)[1]
    # Split at LAST @ (password may contain @)
    at_idx = url.rfind("@")
    credentials = url[:at_idx]
    host_part = url[at_idx + 1:]
    colon_idx = credentials.find(":")
    user = credentials[:colon_idx]
    password = credentials[colon_idx + 1:]
    host_port, _, database = host_part.partition("/")
    database = database.split("?", 1)[0]
    if ":" in host_port:
        host, port_str = host_port.rsplit(":", 1)
    else:
        host, port_str = host_port, "5432"
    return {
        "user": user,
        "password": password,
        "host": host,
        "port": int(port_str),
        "database": database or "postgres",
    }


class PostgresHistoryBackend:
    """
    PostgreSQL-backed history list.

    Thread-safe via connection-per-operation pattern.
    """

    def __init__(self, database_url: str, ssl: bool = True) -> None:
        self._conn_kwargs = parse_database_url(database_url)
        self._ssl = ssl
        self._ensure_schema()

    def _get_conn(self):
        return pg8000.native.Connection(
            ssl_context=self._ssl,
            **self._conn_kwargs,
        )

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            for stmt in _INIT_SQL.split(";")[:-1]:
                if stmt.strip():
                    conn.run(stmt)
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def load_all(self) -> List[dict]:
        conn = self._get_conn()
        try:
            rows = conn.run("SELECT record FROM draw_history ORDER BY position")
        finally:
            conn.close()
        return [r[0] if isinstance(r[0], dict) else json.loads(r[0]) for r in rows]

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def replace_all(self, records: List[dict]) -> None:
        """Replace the stored list inside one transaction."""
        conn = self._get_conn()
        try:
            conn.run("START TRANSACTION")
            try:
                conn.run("DELETE FROM draw_history")
                for position, record in enumerate(records):
                    conn.run(
                        """
                        INSERT INTO draw_history (id, position, date, record, updated_at)
                        VALUES (:rid, :pos, :date, CAST(:record AS JSONB), NOW())
                        """,
                        rid=str(record.get("id") or f"_pos_{position}"),
                        pos=position,
                        date=str(record.get("date") or ""),
                        record=json.dumps(record, ensure_ascii=False),
                    )
                conn.run("COMMIT")
            except Exception:
                conn.run("ROLLBACK")
                raise
        finally:
            conn.close()

    def close(self) -> None:
        """Connections are per operation; nothing to release."""

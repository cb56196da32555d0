"""SQLite-backed store for autotrigger.

Three tables:
    app_state        JSON documents keyed by name (schedule config, ...)
    trigger_history  persisted ledger, most recent first by position
    credentials      single-row OAuth credential
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from loguru import logger

from autotrigger.core.schedule.types import TriggerRecord


class TriggerStore:
    """SQLite state — single source of truth across restarts."""

    def __init__(self, db_path: str = "data/autotrigger.db"):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        logger.info(f"TriggerStore initialized: {db_path}")

    @contextmanager
    def _get_conn(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
        finally:
            conn.close()

    def _init_db(self):
        with self._get_conn() as conn:
            conn.executescript(_SCHEMA)
            conn.commit()

    # ════════════════════════════════════════════════════════════
    # APP STATE (JSON documents)
    # ════════════════════════════════════════════════════════════

    def get_state(self, key: str, default: Any = None) -> Any:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT value FROM app_state WHERE key = ?", (key,)
            ).fetchone()
        if not row:
            return default
        return json.loads(row["value"])

    def save_state(self, key: str, value: Any) -> None:
        with self._get_conn() as conn:
            conn.execute(
                """INSERT INTO app_state (key, value, updated_at)
                   VALUES (?, ?, CURRENT_TIMESTAMP)
                   ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value,
                       updated_at = CURRENT_TIMESTAMP""",
                (key, json.dumps(value, ensure_ascii=False)),
            )
            conn.commit()

    def delete_state(self, key: str) -> None:
        with self._get_conn() as conn:
            conn.execute("DELETE FROM app_state WHERE key = ?", (key,))
            conn.commit()

    # ════════════════════════════════════════════════════════════
    # TRIGGER HISTORY
    # ════════════════════════════════════════════════════════════

    def save_trigger_history(self, records: list[TriggerRecord]) -> None:
        """Replace the persisted ledger (most recent first) in one transaction."""
        rows = [
            (
                position,
                r.timestamp.isoformat(),
                int(r.success),
                r.trigger_type.value,
                r.prompt,
                r.message,
                r.duration_ms,
            )
            for position, r in enumerate(records)
        ]
        with self._get_conn() as conn:
            conn.execute("DELETE FROM trigger_history")
            conn.executemany(
                """INSERT INTO trigger_history
                   (position, timestamp, success, trigger_type, prompt, message, duration_ms)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                rows,
            )
            conn.commit()

    def get_trigger_history(self, limit: int | None = None) -> list[TriggerRecord]:
        """Persisted ledger, most recent first."""
        query = "SELECT * FROM trigger_history ORDER BY position ASC"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        with self._get_conn() as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            TriggerRecord(
                timestamp=r["timestamp"],
                success=bool(r["success"]),
                trigger_type=r["trigger_type"],
                prompt=r["prompt"],
                message=r["message"],
                duration_ms=r["duration_ms"],
            )
            for r in rows
        ]

    def clear_trigger_history(self) -> None:
        with self._get_conn() as conn:
            conn.execute("DELETE FROM trigger_history")
            conn.commit()

    # ════════════════════════════════════════════════════════════
    # CREDENTIALS
    # ════════════════════════════════════════════════════════════

    def save_credential(self, credential: dict[str, Any]) -> None:
        with self._get_conn() as conn:
            conn.execute(
                """INSERT INTO credentials (id, data, updated_at)
                   VALUES (1, ?, CURRENT_TIMESTAMP)
                   ON CONFLICT(id) DO UPDATE SET
                       data = excluded.data,
                       updated_at = CURRENT_TIMESTAMP""",
                (json.dumps(credential),),
            )
            conn.commit()
        logger.info("Credential saved")

    def get_credential(self) -> dict[str, Any] | None:
        with self._get_conn() as conn:
            row = conn.execute("SELECT data FROM credentials WHERE id = 1").fetchone()
        return json.loads(row["data"]) if row else None

    def delete_credential(self) -> bool:
        with self._get_conn() as conn:
            cur = conn.execute("DELETE FROM credentials WHERE id = 1")
            conn.commit()
        if cur.rowcount:
            logger.info("Credential deleted")
        return cur.rowcount > 0


_SCHEMA = """
CREATE TABLE IF NOT EXISTS app_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS trigger_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    position INTEGER NOT NULL,
    timestamp TEXT NOT NULL,
    success INTEGER NOT NULL,
    trigger_type TEXT NOT NULL DEFAULT 'manual',
    prompt TEXT,
    message TEXT,
    duration_ms INTEGER
);
CREATE INDEX IF NOT EXISTS idx_trigger_history_position
    ON trigger_history(position);

CREATE TABLE IF NOT EXISTS credentials (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    data TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

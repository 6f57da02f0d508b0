# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
SQLite-backed key/value records for arena snapshots.

Each session owns a set of (key, JSON value) rows. A snapshot is written in a
single transaction, so readers see either the previous snapshot or the new
one, never a mix.
"""

import json
import sqlite3
import logging

from pathlib import Path
from typing import Any, Dict, List
from contextlib import contextmanager

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class StateStore:
    """Repository for per-session arena state."""

    def __init__(self, db_path: Path | str):
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database file (created if it doesn't exist)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections with transaction support."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self):
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS arena_state (
                    session_id TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (session_id, key)
                )
            """)

    def save_state(self, session_id: str, state: Dict[str, Any]) -> None:
        """Replace the stored state of a session with the given records."""
        with self._get_connection() as conn:
            conn.execute("DELETE FROM arena_state WHERE session_id = ?", (session_id,))
            conn.executemany(
                """
                INSERT INTO arena_state (session_id, key, value, updated_at)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP)
                """,
                [(session_id, key, json.dumps(value)) for key, value in state.items()],
            )
        logger.debug(f"Saved {len(state)} state records for session {session_id}")

    def load_state(self, session_id: str) -> Dict[str, Any]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT key, value FROM arena_state WHERE session_id = ?", (session_id,)
            ).fetchall()
        return {row["key"]: json.loads(row["value"]) for row in rows}

    def clear_state(self, session_id: str) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM arena_state WHERE session_id = ?", (session_id,))

    def list_sessions(self) -> List[str]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT DISTINCT session_id FROM arena_state ORDER BY session_id"
            ).fetchall()
        return [row["session_id"] for row in rows]

"""SQLite-backed history of emails sent on a user's behalf."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from app.clients.credential_store import StoreUnavailableError


class SQLiteEmailLog:
    """Append-only log of send attempts, successful or not."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS emails_sent (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id TEXT NOT NULL,
                        company_name TEXT NOT NULL,
                        company_email TEXT NOT NULL,
                        job_title TEXT,
                        status TEXT NOT NULL,
                        error_message TEXT,
                        message_id TEXT,
                        sent_at TEXT,
                        created_at TEXT NOT NULL
                    )
                    """
                )
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Cannot initialise email log: {exc}") from exc

    def record(
        self,
        *,
        user_id: str,
        company_name: str,
        company_email: str,
        status: str,
        job_title: Optional[str] = None,
        message_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> int:
        """Persist a send attempt and return its row id."""
        now = datetime.now(timezone.utc).isoformat()
        sent_at = now if status == "sent" else None
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO emails_sent (
                        user_id, company_name, company_email, job_title, status,
                        error_message, message_id, sent_at, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user_id,
                        company_name,
                        company_email,
                        job_title,
                        status,
                        error_message,
                        message_id,
                        sent_at,
                        now,
                    ),
                )
        except sqlite3.Error as exc:
            raise StoreUnavailableError("Email log unavailable.") from exc
        return int(cursor.lastrowid)

    def list_for_user(self, user_id: str, *, limit: int = 50) -> list[Dict[str, Any]]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT id, company_name, company_email, job_title, status,
                           error_message, message_id, sent_at, created_at
                    FROM emails_sent
                    WHERE user_id = ?
                    ORDER BY id DESC
                    LIMIT ?
                    """,
                    (user_id, limit),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailableError("Email log unavailable.") from exc
        return [dict(row) for row in rows]


__all__ = ["SQLiteEmailLog"]

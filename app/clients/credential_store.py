"""SQLite-backed storage for encrypted Google credentials, one row per user."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from app.models.oauth import CredentialRecord

logger = logging.getLogger(__name__)


class StoreUnavailableError(Exception):
    """Raised when the persistence layer cannot be reached or fails."""


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SQLiteCredentialStore:
    """Read, upsert and delete credential records keyed by ``user_id``.

    The store never sees plaintext tokens; callers hand it ciphertext produced
    by :class:`~app.services.token_cipher.TokenCipherService`.
    """

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
                    CREATE TABLE IF NOT EXISTS google_tokens (
                        user_id TEXT PRIMARY KEY,
                        access_token TEXT NOT NULL,
                        refresh_token TEXT NOT NULL,
                        expires_at TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Cannot initialise credential store: {exc}") from exc

    def load(self, user_id: str) -> Optional[CredentialRecord]:
        """Return the stored record for ``user_id`` or ``None`` if never connected."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    SELECT user_id, access_token, refresh_token, expires_at,
                           created_at, updated_at
                    FROM google_tokens WHERE user_id = ?
                    """,
                    (user_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            logger.error("Credential load failed for user %s: %s", user_id, exc)
            raise StoreUnavailableError("Credential store unavailable.") from exc
        if not row:
            return None
        return CredentialRecord(
            user_id=row["user_id"],
            access_token_ciphertext=row["access_token"],
            refresh_token_ciphertext=row["refresh_token"],
            expires_at=_from_iso(row["expires_at"]),
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
        )

    def upsert(
        self,
        user_id: str,
        access_token_ciphertext: str,
        refresh_token_ciphertext: str,
        expires_at: datetime,
    ) -> CredentialRecord:
        """Insert or replace the record for ``user_id`` in a single statement."""
        now = datetime.now(timezone.utc)
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO google_tokens (
                        user_id, access_token, refresh_token, expires_at,
                        created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(user_id) DO UPDATE SET
                        access_token = excluded.access_token,
                        refresh_token = excluded.refresh_token,
                        expires_at = excluded.expires_at,
                        updated_at = excluded.updated_at
                    """,
                    (
                        user_id,
                        access_token_ciphertext,
                        refresh_token_ciphertext,
                        _to_iso(expires_at),
                        now.isoformat(),
                        now.isoformat(),
                    ),
                )
        except sqlite3.Error as exc:
            logger.error("Credential upsert failed for user %s: %s", user_id, exc)
            raise StoreUnavailableError("Credential store unavailable.") from exc

        record = self.load(user_id)
        if record is None:  # pragma: no cover - row was just written
            raise StoreUnavailableError("Credential record vanished after upsert.")
        return record

    def delete(self, user_id: str) -> bool:
        """Remove the record for ``user_id``; returns whether a row existed."""
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    "DELETE FROM google_tokens WHERE user_id = ?",
                    (user_id,),
                )
        except sqlite3.Error as exc:
            logger.error("Credential delete failed for user %s: %s", user_id, exc)
            raise StoreUnavailableError("Credential store unavailable.") from exc
        return cursor.rowcount > 0


__all__ = ["SQLiteCredentialStore", "StoreUnavailableError"]

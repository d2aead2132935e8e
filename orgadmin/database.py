"""SQLite-backed state owned by this service: decision issuances and cleanups.

Profiles and identities live in the hosted database; this file only tracks
what the service itself needs to keep links single-use and to finish
partially failed deletions.
"""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .config import resolve_database_path
from .models import Issuance, PendingCleanup


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


class Database:
    """Simple wrapper around SQLite for the service's bookkeeping tables."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS decision_issuances (
                    issuance_id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    consumed_at TEXT,
                    outcome TEXT
                );

                CREATE TABLE IF NOT EXISTS pending_cleanups (
                    user_id TEXT PRIMARY KEY,
                    reason TEXT NOT NULL,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_decision_issuances_user_id ON decision_issuances(user_id);
                """
            )

    # ------------------------------------------------------------------
    # Decision issuances
    # ------------------------------------------------------------------
    def record_issuance(self, issuance_id: str, user_id: str) -> Issuance:
        created_at = _current_timestamp()
        with self._connect() as conn:
            try:
                conn.execute(
                    "INSERT INTO decision_issuances (issuance_id, user_id, created_at) VALUES (?, ?, ?)",
                    (issuance_id, user_id, _serialize_datetime(created_at)),
                )
            except sqlite3.IntegrityError as exc:
                raise ValueError(f"Issuance {issuance_id} already exists") from exc
        return Issuance(issuance_id=issuance_id, user_id=user_id, created_at=created_at)

    def get_issuance(self, issuance_id: str) -> Optional[Issuance]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM decision_issuances WHERE issuance_id = ?",
                (issuance_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_issuance(row)

    def has_issuance_for(self, user_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM decision_issuances WHERE user_id = ? LIMIT 1",
                (user_id,),
            ).fetchone()
        return row is not None

    def consume_issuance(self, issuance_id: str, outcome: str) -> bool:
        """Mark an issuance as used; ``False`` if it was already consumed or unknown."""

        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE decision_issuances
                   SET consumed_at = ?, outcome = ?
                 WHERE issuance_id = ? AND consumed_at IS NULL
                """,
                (_serialize_datetime(_current_timestamp()), outcome, issuance_id),
            )
            return cursor.rowcount == 1

    def release_issuance(self, issuance_id: str) -> None:
        """Undo :meth:`consume_issuance` after the decision itself failed."""

        with self._connect() as conn:
            conn.execute(
                "UPDATE decision_issuances SET consumed_at = NULL, outcome = NULL WHERE issuance_id = ?",
                (issuance_id,),
            )

    def discard_issuance(self, issuance_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM decision_issuances WHERE issuance_id = ?", (issuance_id,))

    def list_issuances_for(self, user_id: str) -> List[Issuance]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM decision_issuances WHERE user_id = ? ORDER BY created_at, rowid",
                (user_id,),
            ).fetchall()
        return [self._row_to_issuance(row) for row in rows]

    # ------------------------------------------------------------------
    # Pending cleanups
    # ------------------------------------------------------------------
    def add_pending_cleanup(self, user_id: str, reason: str, attempts: int) -> None:
        now = _serialize_datetime(_current_timestamp())
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO pending_cleanups (user_id, reason, attempts, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE
                   SET reason = excluded.reason,
                       attempts = pending_cleanups.attempts + excluded.attempts,
                       updated_at = excluded.updated_at
                """,
                (user_id, reason, attempts, now, now),
            )

    def list_pending_cleanups(self) -> List[PendingCleanup]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM pending_cleanups ORDER BY created_at").fetchall()
        return [self._row_to_cleanup(row) for row in rows]

    def has_pending_cleanup(self, user_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM pending_cleanups WHERE user_id = ?", (user_id,)).fetchone()
        return row is not None

    def resolve_pending_cleanup(self, user_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM pending_cleanups WHERE user_id = ?", (user_id,))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _row_to_issuance(self, row: sqlite3.Row) -> Issuance:
        return Issuance(
            issuance_id=str(row["issuance_id"]),
            user_id=str(row["user_id"]),
            created_at=_parse_datetime(str(row["created_at"])),
            consumed_at=_parse_datetime(row["consumed_at"]),
            outcome=row["outcome"],
        )

    def _row_to_cleanup(self, row: sqlite3.Row) -> PendingCleanup:
        return PendingCleanup(
            user_id=str(row["user_id"]),
            reason=str(row["reason"]),
            attempts=int(row["attempts"]),
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )


__all__ = ["Database", "resolve_database_path"]

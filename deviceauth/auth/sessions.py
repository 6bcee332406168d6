"""Persistence for device sessions keyed by hashed tokens."""

from __future__ import annotations

import sqlite3

from deviceauth.auth.models import Session
from deviceauth.core.database import Database

_SESSION_COLUMNS = (
    "session_id, user_id, device_id, access_token_hash, refresh_token_hash, "
    "expires_at, created_at, updated_at"
)


def insert_session(cursor: sqlite3.Cursor, session: Session) -> None:
    """Insert a session row on a cursor the caller already holds."""
    cursor.execute(
        f"INSERT INTO device_sessions({_SESSION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (
            session.session_id,
            session.user_id,
            session.device_id,
            session.access_token_hash,
            session.refresh_token_hash,
            session.expires_at,
            session.created_at,
            session.updated_at,
        ),
    )


class SessionRepository:
    """Session rows; raw tokens never reach the store."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def create(self, session: Session) -> None:
        with self._db.transaction() as cursor:
            insert_session(cursor, session)

    def find_by_refresh_hash(self, refresh_token_hash: str) -> Session | None:
        with self._db.transaction() as cursor:
            row = cursor.execute(
                f"SELECT {_SESSION_COLUMNS} FROM device_sessions WHERE refresh_token_hash = ?",
                (refresh_token_hash,),
            ).fetchone()
        return Session.model_validate(dict(row)) if row is not None else None

    def rotate(
        self,
        *,
        session_id: str,
        old_refresh_hash: str,
        access_token_hash: str,
        refresh_token_hash: str,
        expires_at: int,
        updated_at: int,
    ) -> bool:
        """Swap token hashes on the row still holding ``old_refresh_hash``.

        Returns ``False`` when another caller rotated the row first.
        """
        with self._db.transaction() as cursor:
            cursor.execute(
                """
                UPDATE device_sessions
                SET access_token_hash = ?,
                    refresh_token_hash = ?,
                    expires_at = ?,
                    updated_at = ?
                WHERE session_id = ? AND refresh_token_hash = ?
                """,
                (
                    access_token_hash,
                    refresh_token_hash,
                    expires_at,
                    updated_at,
                    session_id,
                    old_refresh_hash,
                ),
            )
            return cursor.rowcount == 1


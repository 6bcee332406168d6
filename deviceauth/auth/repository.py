"""Repository for device-bound users and their optional password credentials."""

from __future__ import annotations

import sqlite3
import time
import uuid
from typing import Any, Callable

from deviceauth.api.errors import ApiErrorCode, ConflictError, NotFoundError
from deviceauth.auth.models import Session, User
from deviceauth.auth.sessions import insert_session
from deviceauth.core.database import Database

_USER_COLUMNS = (
    "user_id, device_id, public_key, platform, display_name, "
    "username, password_hash, created_at, last_login"
)


def new_user_id() -> str:
    return uuid.uuid4().hex


def default_display_name(platform: str, user_id: str) -> str:
    """Display name used when the client does not name the device."""
    return f"{platform}_user_{user_id[:8]}"


class CredentialRepository:
    """SQLite-backed user store; unique indexes arbitrate concurrent writers."""

    def __init__(
        self, database: Database, *, clock: Callable[[], float] = time.time
    ) -> None:
        self._db = database
        self._clock = clock

    def register_device(
        self,
        *,
        device_id: str,
        public_key: str,
        platform: str,
        display_name: str | None = None,
        user_id: str | None = None,
        initial_session: Session | None = None,
    ) -> User:
        """Create a user bound to ``device_id``; duplicate device raises 409.

        When ``initial_session`` is given its row is written in the same
        transaction, so a failed session write leaves no user behind.
        """
        user_id = user_id or new_user_id()
        user = User(
            user_id=user_id,
            device_id=device_id,
            public_key=public_key,
            platform=platform,
            display_name=(display_name or "").strip()
            or default_display_name(platform, user_id),
            created_at=int(self._clock()),
        )
        with self._db.transaction() as cursor:
            try:
                cursor.execute(
                    f"""
                    INSERT INTO users({_USER_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, NULL, NULL, ?, NULL)
                    """,
                    (
                        user.user_id,
                        user.device_id,
                        user.public_key,
                        user.platform,
                        user.display_name,
                        user.created_at,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise ConflictError(
                    "Device already registered",
                    ApiErrorCode.DEVICE_ALREADY_REGISTERED,
                ) from exc
            if initial_session is not None:
                insert_session(cursor, initial_session)
        return user

    def find_by_device_id(self, device_id: str) -> User | None:
        return self._find_one("device_id = ?", (device_id,))

    def find_by_username(self, username: str) -> User | None:
        return self._find_one("username = ?", (username,))

    def find_by_user_id(self, user_id: str) -> User | None:
        return self._find_one("user_id = ?", (user_id,))

    def find_by_user_and_device(self, user_id: str, device_id: str) -> User | None:
        """Return the user only when ``device_id`` is the one bound to it."""
        return self._find_one("user_id = ? AND device_id = ?", (user_id, device_id))

    def set_credentials(self, user_id: str, username: str, password_hash: str) -> User:
        """Attach username and password hash to an existing user."""
        try:
            with self._db.transaction() as cursor:
                cursor.execute(
                    "UPDATE users SET username = ?, password_hash = ? WHERE user_id = ?",
                    (username, password_hash, user_id),
                )
                updated = cursor.rowcount
        except sqlite3.IntegrityError as exc:
            raise ConflictError("Username already taken", ApiErrorCode.USERNAME_TAKEN) from exc

        if updated != 1:
            raise NotFoundError("User not found", ApiErrorCode.USER_NOT_FOUND)
        user = self.find_by_user_id(user_id)
        if user is None:
            raise NotFoundError("User not found", ApiErrorCode.USER_NOT_FOUND)
        return user

    def touch_last_login(self, user_id: str) -> bool:
        """Stamp the login time; ``False`` when the user no longer exists."""
        with self._db.transaction() as cursor:
            cursor.execute(
                "UPDATE users SET last_login = ? WHERE user_id = ?",
                (int(self._clock()), user_id),
            )
            return cursor.rowcount == 1

    def _find_one(self, where: str, params: tuple[Any, ...]) -> User | None:
        with self._db.transaction() as cursor:
            row = cursor.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE {where} LIMIT 1",
                params,
            ).fetchone()
        return User.model_validate(dict(row)) if row is not None else None

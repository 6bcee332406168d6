"""Shared SQLite handle with serialized transactions."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Iterator

from deviceauth.core.migrations import apply_migrations

LOGGER = logging.getLogger(__name__)


class Database:
    """Migrated SQLite connection guarded by a process-local lock.

    Every read-modify-write goes through :meth:`transaction`, which holds the
    lock for the whole unit of work and commits or rolls back as one step.
    """

    def __init__(self, database_path: Path, *, timeout_seconds: float = 5.0) -> None:
        """Apply pending migrations and open the connection."""
        applied = apply_migrations(database_path)
        for migration_id in applied:
            LOGGER.info("migration_applied", extra={"action": migration_id})
        self._path = database_path
        self._connection = sqlite3.connect(
            str(database_path),
            check_same_thread=False,
            timeout=timeout_seconds,
        )
        self._connection.row_factory = sqlite3.Row
        self._connection.execute("PRAGMA foreign_keys = ON")
        self._lock = Lock()

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """Yield a cursor inside one serialized transaction."""
        with self._lock:
            cursor = self._connection.cursor()
            try:
                yield cursor
            except BaseException:
                self._connection.rollback()
                raise
            else:
                self._connection.commit()
            finally:
                cursor.close()

    def close(self) -> None:
        """Close SQLite resources."""
        with self._lock:
            self._connection.close()

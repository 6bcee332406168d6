from __future__ import annotations

import sqlite3
from pathlib import Path

from deviceauth.core.migrations import apply_migrations


def test_apply_migrations_creates_auth_and_audit_tables(tmp_path: Path) -> None:
    db_path = tmp_path / "state.db"

    applied = apply_migrations(db_path)

    connection = sqlite3.connect(str(db_path))
    try:
        cursor = connection.cursor()
        tables = {
            row[0]
            for row in cursor.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        }

        assert "schema_migrations" in tables
        assert {"users", "auth_challenges", "device_sessions", "secure_audit_logs"} <= tables

        migration_ids = {
            row[0]
            for row in cursor.execute(
                "SELECT migration_id FROM schema_migrations"
            ).fetchall()
        }
        assert "0001_users.sql" in migration_ids
        assert "0004_secure_audit_logs.sql" in migration_ids
        assert sorted(applied) == sorted(migration_ids)
    finally:
        connection.close()


def test_apply_migrations_is_idempotent(tmp_path: Path) -> None:
    db_path = tmp_path / "state.db"

    apply_migrations(db_path)

    assert apply_migrations(db_path) == []

from __future__ import annotations

import hashlib
from pathlib import Path

from deviceauth.audit.cipher import Decrypted, DecryptionFailed
from deviceauth.audit.models import (
    AuditActionType,
    AuditEntityType,
    AuditEvent,
    AuditPlatform,
    AuditQueryFilters,
)
from deviceauth.audit.service import (
    AuditLogger,
    bucket_to_hour,
    decrypted_metadata,
    fingerprint_device,
)
from deviceauth.core.database import Database
from tests.support import FakeClock, field_cipher


def _logger(tmp_path: Path) -> tuple[AuditLogger, Database, FakeClock]:
    database = Database(tmp_path / "audit.db")
    clock = FakeClock(now=1_700_001_234.0)
    return AuditLogger(database, field_cipher(), retention_days=30, clock=clock), database, clock


def _event(**overrides) -> AuditEvent:
    fields = {
        "action_type": AuditActionType.LOGIN_SUCCESS,
        "entity_type": AuditEntityType.SESSION,
        "device_id": "dev-1",
        "platform": AuditPlatform.IOS,
        "user_id": "user-1",
        "username": "alice",
        "metadata": {"authMethod": "hybrid"},
    }
    fields.update(overrides)
    return AuditEvent(**fields)


def test_bucket_to_hour_zeroes_minutes_and_seconds() -> None:
    assert bucket_to_hour(1_700_001_234) == 1_699_999_200
    assert bucket_to_hour(1_699_999_200) == 1_699_999_200


def test_write_event_stores_no_plaintext_identifiers(tmp_path: Path) -> None:
    audit, database, clock = _logger(tmp_path)

    audit.write_event(_event())

    with database.transaction() as cursor:
        row = cursor.execute("SELECT * FROM secure_audit_logs").fetchone()
    assert row["device_fingerprint"] == hashlib.sha256(b"dev-1").hexdigest()
    assert row["timestamp_bucket"] % 3600 == 0
    assert row["timestamp_bucket"] == bucket_to_hour(int(clock.now))
    assert b"user-1" not in bytes(row["user_id_encrypted"])
    assert b"alice" not in bytes(row["username_encrypted"])


def test_query_logs_decrypts_each_field(tmp_path: Path) -> None:
    audit, _, _ = _logger(tmp_path)
    audit.write_event(_event())

    [log] = audit.query_logs()

    assert log.user_id == Decrypted("user-1")
    assert log.username == Decrypted("alice")
    assert decrypted_metadata(log.metadata) == {"authMethod": "hybrid"}
    assert log.device_fingerprint == fingerprint_device("dev-1")
    assert log.decryption_failures == []


def test_query_continues_past_tampered_row(tmp_path: Path) -> None:
    audit, database, clock = _logger(tmp_path)
    tampered_id = audit.write_event(_event(user_id="user-1"))
    clock.advance(1)
    audit.write_event(_event(user_id="user-2", username=None, metadata=None))
    with database.transaction() as cursor:
        cursor.execute(
            "UPDATE secure_audit_logs SET user_id_tag = ? WHERE id = ?",
            (b"\x00" * 16, tampered_id),
        )

    logs = audit.query_logs()

    assert [log.id for log in logs][1] == tampered_id
    assert logs[0].user_id == Decrypted("user-2")
    assert logs[0].username is None
    assert isinstance(logs[1].user_id, DecryptionFailed)
    assert logs[1].username == Decrypted("alice")
    assert logs[1].decryption_failures == ["user_id"]


def test_query_logs_filters(tmp_path: Path) -> None:
    audit, _, clock = _logger(tmp_path)
    audit.write_event(_event())
    audit.write_event(_event(action_type=AuditActionType.LOGIN_FAILED, success=False))
    clock.advance(3 * 3600)
    audit.write_event(_event(platform=AuditPlatform.WEB))

    failed = audit.query_logs(AuditQueryFilters(success=False))
    web = audit.query_logs(AuditQueryFilters(platform=AuditPlatform.WEB))
    recent = audit.query_logs(AuditQueryFilters(start_bucket=bucket_to_hour(int(clock.now))))
    limited = audit.query_logs(AuditQueryFilters(limit=1))

    assert [log.action_type for log in failed] == ["login_failed"]
    assert [log.platform for log in web] == ["web"]
    assert len(recent) == 1
    assert len(limited) == 1
    assert limited[0].platform == "web"


def test_get_stats_groups_by_action_and_platform(tmp_path: Path) -> None:
    audit, _, _ = _logger(tmp_path)
    audit.write_event(_event(device_id="dev-1"))
    audit.write_event(_event(device_id="dev-2"))
    audit.write_event(_event(device_id="dev-2", success=False))
    audit.write_event(_event(action_type=AuditActionType.SIGNUP_SUCCESS))

    stats = {(row.action_type, row.platform): row for row in audit.get_stats(days=7)}

    login = stats[("login_success", "ios")]
    assert login.total_count == 3
    assert login.success_count == 2
    assert login.failure_count == 1
    assert login.unique_devices == 2
    assert login.first_seen == login.last_seen
    assert stats[("signup_success", "ios")].total_count == 1


def test_cleanup_deletes_only_rows_past_retention(tmp_path: Path) -> None:
    audit, _, clock = _logger(tmp_path)
    audit.write_event(_event(user_id="old"))
    clock.advance(31 * 24 * 3600)
    audit.write_event(_event(user_id="new"))

    assert audit.count_expired() == 1
    assert audit.cleanup() == 1
    [remaining] = audit.query_logs()
    assert remaining.user_id == Decrypted("new")

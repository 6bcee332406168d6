"""Privacy-preserving audit trail over SQLite.

Identifiers that name a person (user id, username, free-form metadata) are
stored encrypted per field. Everything needed for aggregate reporting (action,
platform, hour bucket, device fingerprint) stays in the clear so statistics
never touch key material.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Any, Callable

from deviceauth.audit.cipher import Decrypted, DecryptionFailed, DecryptResult, FieldCipher
from deviceauth.audit.models import (
    AuditEvent,
    AuditQueryFilters,
    AuditStats,
    DecryptedAuditLog,
)
from deviceauth.core.database import Database

LOGGER = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 24 * SECONDS_PER_HOUR
UNKNOWN_USER = "unknown"


def fingerprint_device(device_id: str) -> str:
    """One-way device identifier used for correlation without disclosure."""
    return hashlib.sha256(device_id.encode("utf-8")).hexdigest()


def bucket_to_hour(timestamp: int) -> int:
    """Truncate epoch seconds to the start of their hour."""
    return timestamp - timestamp % SECONDS_PER_HOUR


class AuditLogger:
    """Encrypting writer and decrypting reader for ``secure_audit_logs``."""

    def __init__(
        self,
        database: Database,
        cipher: FieldCipher,
        *,
        retention_days: int = 30,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = database
        self._cipher = cipher
        self._retention_days = retention_days
        self._clock = clock

    @property
    def retention_days(self) -> int:
        return self._retention_days

    def write_event(self, event: AuditEvent) -> int:
        """Encrypt and insert one event; returns the new row id."""
        now = int(self._clock())
        user_id = self._cipher.encrypt(event.user_id or UNKNOWN_USER)
        username = self._cipher.encrypt(event.username) if event.username else None
        metadata = (
            self._cipher.encrypt(json.dumps(event.metadata, separators=(",", ":")))
            if event.metadata
            else None
        )

        with self._db.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO secure_audit_logs(
                  user_id_encrypted, user_id_iv, user_id_tag,
                  username_encrypted, username_iv, username_tag,
                  action_type, entity_type, entity_id,
                  device_fingerprint, platform, timestamp_bucket,
                  success, error_message,
                  metadata_encrypted, metadata_iv, metadata_tag,
                  created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id.ciphertext,
                    user_id.iv,
                    user_id.tag,
                    username.ciphertext if username else None,
                    username.iv if username else None,
                    username.tag if username else None,
                    str(event.action_type),
                    str(event.entity_type),
                    event.entity_id,
                    fingerprint_device(event.device_id),
                    str(event.platform),
                    bucket_to_hour(now),
                    1 if event.success else 0,
                    event.error_message,
                    metadata.ciphertext if metadata else None,
                    metadata.iv if metadata else None,
                    metadata.tag if metadata else None,
                    now,
                ),
            )
            return int(cursor.lastrowid)

    def query_logs(self, filters: AuditQueryFilters | None = None) -> list[DecryptedAuditLog]:
        """Return matching rows newest first, decrypting each field on its own."""
        filters = filters or AuditQueryFilters()
        conditions: list[str] = []
        params: list[Any] = []
        if filters.action_type is not None:
            conditions.append("action_type = ?")
            params.append(str(filters.action_type))
        if filters.platform is not None:
            conditions.append("platform = ?")
            params.append(str(filters.platform))
        if filters.start_bucket is not None:
            conditions.append("timestamp_bucket >= ?")
            params.append(int(filters.start_bucket))
        if filters.end_bucket is not None:
            conditions.append("timestamp_bucket <= ?")
            params.append(int(filters.end_bucket))
        if filters.success is not None:
            conditions.append("success = ?")
            params.append(1 if filters.success else 0)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        params.append(max(1, int(filters.limit)))
        with self._db.transaction() as cursor:
            rows = cursor.execute(
                f"""
                SELECT * FROM secure_audit_logs
                {where}
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                params,
            ).fetchall()
        return [self._decrypt_row(row) for row in rows]

    def get_stats(self, days: int = 7) -> list[AuditStats]:
        """Aggregate counts per (action type, platform) over the last ``days`` days."""
        since = bucket_to_hour(int(self._clock())) - max(1, int(days)) * SECONDS_PER_DAY
        with self._db.transaction() as cursor:
            rows = cursor.execute(
                """
                SELECT
                  action_type,
                  platform,
                  COUNT(*) AS total_count,
                  SUM(CASE WHEN success = 1 THEN 1 ELSE 0 END) AS success_count,
                  SUM(CASE WHEN success = 0 THEN 1 ELSE 0 END) AS failure_count,
                  COUNT(DISTINCT device_fingerprint) AS unique_devices,
                  MIN(timestamp_bucket) AS first_seen,
                  MAX(timestamp_bucket) AS last_seen
                FROM secure_audit_logs
                WHERE timestamp_bucket >= ?
                GROUP BY action_type, platform
                ORDER BY total_count DESC, action_type, platform
                """,
                (since,),
            ).fetchall()
        return [AuditStats(**dict(row)) for row in rows]

    def count_expired(self) -> int:
        with self._db.transaction() as cursor:
            row = cursor.execute(
                "SELECT COUNT(*) AS total FROM secure_audit_logs WHERE created_at < ?",
                (self._retention_horizon(),),
            ).fetchone()
        return int(row["total"])

    def cleanup(self) -> int:
        """Delete rows older than the retention horizon and return the count."""
        with self._db.transaction() as cursor:
            cursor.execute(
                "DELETE FROM secure_audit_logs WHERE created_at < ?",
                (self._retention_horizon(),),
            )
            deleted = cursor.rowcount
        LOGGER.info("audit_cleanup_completed", extra={"action": "cleanup", "count": deleted})
        return deleted

    def _retention_horizon(self) -> int:
        return int(self._clock()) - self._retention_days * SECONDS_PER_DAY

    def _decrypt_row(self, row: Any) -> DecryptedAuditLog:
        failures: list[str] = []
        user_id = self._cipher.decrypt(
            row["user_id_encrypted"], row["user_id_iv"], row["user_id_tag"]
        )
        if isinstance(user_id, DecryptionFailed):
            failures.append("user_id")

        username = self._decrypt_optional(row, "username")
        if isinstance(username, DecryptionFailed):
            failures.append("username")

        metadata = self._decrypt_optional(row, "metadata")
        if isinstance(metadata, DecryptionFailed):
            failures.append("metadata")

        if failures:
            LOGGER.warning(
                "audit_field_decryption_failed",
                extra={"action": row["action_type"], "reason": ",".join(failures)},
            )

        return DecryptedAuditLog(
            id=int(row["id"]),
            user_id=user_id,
            username=username,
            metadata=metadata,
            action_type=str(row["action_type"]),
            entity_type=str(row["entity_type"]),
            entity_id=row["entity_id"],
            device_fingerprint=str(row["device_fingerprint"]),
            platform=str(row["platform"]),
            timestamp_bucket=int(row["timestamp_bucket"]),
            success=bool(row["success"]),
            error_message=row["error_message"],
            created_at=int(row["created_at"]),
            decryption_failures=failures,
        )

    def _decrypt_optional(self, row: Any, column: str) -> DecryptResult | None:
        ciphertext = row[f"{column}_encrypted"]
        if ciphertext is None:
            return None
        iv = row[f"{column}_iv"]
        tag = row[f"{column}_tag"]
        if iv is None or tag is None:
            return DecryptionFailed(reason="missing_iv_or_tag")
        return self._cipher.decrypt(ciphertext, iv, tag)


def decrypted_metadata(result: DecryptResult | None) -> dict[str, Any] | None:
    """Parse decrypted metadata JSON; ``None`` when absent or unreadable."""
    if not isinstance(result, Decrypted):
        return None
    try:
        payload = json.loads(result.value)
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None

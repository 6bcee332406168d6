"""Audit trail domain types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from deviceauth.audit.cipher import DecryptResult


class AuditActionType(StrEnum):
    SIGNUP_SUCCESS = "signup_success"
    SIGNUP_FAILED = "signup_failed"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    LOGOUT = "logout"
    PASSWORD_CHANGED = "password_changed"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_RESET_SUCCESS = "password_reset_success"
    TOKEN_REFRESHED = "token_refreshed"
    SESSION_EXPIRED = "session_expired"
    RATE_LIMIT_TRIGGERED = "rate_limit_triggered"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"


class AuditEntityType(StrEnum):
    USER = "user"
    SESSION = "session"
    DEVICE = "device"


class AuditPlatform(StrEnum):
    WEB = "web"
    IOS = "ios"
    ANDROID = "android"
    UNKNOWN = "unknown"

    @classmethod
    def coerce(cls, value: str | None) -> "AuditPlatform":
        """Map free-form client input onto a known platform."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class AuditEvent:
    """One security-relevant outcome, before encryption."""

    action_type: AuditActionType
    entity_type: AuditEntityType
    device_id: str
    platform: AuditPlatform = AuditPlatform.UNKNOWN
    user_id: str | None = None
    username: str | None = None
    entity_id: str | None = None
    success: bool = True
    error_message: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class AuditQueryFilters:
    action_type: AuditActionType | None = None
    platform: AuditPlatform | None = None
    start_bucket: int | None = None
    end_bucket: int | None = None
    success: bool | None = None
    limit: int = 1000


@dataclass(frozen=True)
class DecryptedAuditLog:
    """Stored row with each encrypted field decrypted independently."""

    id: int
    user_id: DecryptResult
    username: DecryptResult | None
    metadata: DecryptResult | None
    action_type: str
    entity_type: str
    entity_id: str | None
    device_fingerprint: str
    platform: str
    timestamp_bucket: int
    success: bool
    error_message: str | None
    created_at: int
    decryption_failures: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class AuditStats:
    action_type: str
    platform: str
    total_count: int
    success_count: int
    failure_count: int
    unique_devices: int
    first_seen: int
    last_seen: int

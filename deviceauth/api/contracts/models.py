"""Pydantic API response models used in OpenAPI contracts."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys for mobile/web clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiErrorResponse(BaseModel):
    """Stable error envelope for API responses."""

    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")


class ChallengeResponse(CamelModel):
    """Freshly issued authentication challenge."""

    challenge: str
    expires_at: str


class AuthSessionResponse(CamelModel):
    """Authentication session response payload with tokens."""

    user_id: str
    display_name: str
    platform: str
    username: str | None = None
    access_token: str
    refresh_token: str
    token_type: Literal["bearer"] = "bearer"
    expires_in: int


class SetPasswordResponse(CamelModel):
    """Hybrid auth enrollment result."""

    user_id: str
    username: str
    display_name: str


class RefreshResponse(CamelModel):
    """Rotated token pair."""

    access_token: str
    refresh_token: str
    token_type: Literal["bearer"] = "bearer"
    expires_in: int


class AuthMeResponse(CamelModel):
    """Claims of the presented access token."""

    user_id: str
    device_id: str


class AuditLogResponse(CamelModel):
    """One decrypted audit event as returned to administrators."""

    id: int
    user_id: str | None
    username: str | None
    action_type: str
    entity_type: str
    entity_id: str | None
    device_fingerprint: str
    platform: str
    timestamp_bucket: datetime
    success: bool
    error_message: str | None
    metadata: dict[str, Any] | None
    created_at: datetime
    decryption_failures: list[str] = Field(default_factory=list)


class AuditLogListResponse(CamelModel):
    """Audit query result."""

    items: list[AuditLogResponse]
    count: int


class AuditStatsItemResponse(CamelModel):
    """Aggregate counts for one (action type, platform) pair."""

    action_type: str
    platform: str
    total_count: int
    success_count: int
    failure_count: int
    unique_devices: int
    first_seen: datetime
    last_seen: datetime


class AuditStatsResponse(CamelModel):
    """Aggregate audit statistics for a window of days."""

    days: int
    items: list[AuditStatsItemResponse]


class AuditCleanupResponse(CamelModel):
    """Retention sweep result."""

    deleted_count: int


class SignatureDiagnosticsResponse(CamelModel):
    """Signature compatibility diagnostics for client developers."""

    valid: bool
    strategy: str | None
    expected_hash: str
    signature_format: str
    message_length: int
    signature_length: int
    public_key_length: int


class HashMessageResponse(CamelModel):
    """Server-side view of how a message is encoded and hashed before verification."""

    message: str
    message_length: int
    message_bytes: str
    hash: str


class CryptoInfoResponse(CamelModel):
    curve: str
    hash_algorithm: str
    public_key_formats: list[str]
    signature_formats: list[str]
    verification_strategies: list[str]


class DiagnosticChallengeResponse(CamelModel):
    """Throwaway challenge for exercising the signature diagnostics; never stored."""

    challenge: str
    expires_at: str

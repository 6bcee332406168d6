"""Public API response contracts."""

from deviceauth.api.contracts.models import (
    ApiErrorResponse,
    AuditCleanupResponse,
    AuditLogListResponse,
    AuditLogResponse,
    AuditStatsItemResponse,
    AuditStatsResponse,
    AuthMeResponse,
    AuthSessionResponse,
    CamelModel,
    ChallengeResponse,
    CryptoInfoResponse,
    DiagnosticChallengeResponse,
    HashMessageResponse,
    RefreshResponse,
    SetPasswordResponse,
    SignatureDiagnosticsResponse,
)

__all__ = [
    "ApiErrorResponse",
    "AuditCleanupResponse",
    "AuditLogListResponse",
    "AuditLogResponse",
    "AuditStatsItemResponse",
    "AuditStatsResponse",
    "AuthMeResponse",
    "AuthSessionResponse",
    "CamelModel",
    "ChallengeResponse",
    "CryptoInfoResponse",
    "DiagnosticChallengeResponse",
    "HashMessageResponse",
    "RefreshResponse",
    "SetPasswordResponse",
    "SignatureDiagnosticsResponse",
]

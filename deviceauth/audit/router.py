"""Administrative audit trail routes."""

from __future__ import annotations

import hmac
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header, Query

from deviceauth.api.contracts import (
    ApiErrorResponse,
    AuditCleanupResponse,
    AuditLogListResponse,
    AuditLogResponse,
    AuditStatsItemResponse,
    AuditStatsResponse,
)
from deviceauth.api.errors import ApiErrorCode, AuthenticationError, NotFoundError
from deviceauth.audit.cipher import Decrypted, DecryptResult
from deviceauth.audit.models import (
    AuditActionType,
    AuditPlatform,
    AuditQueryFilters,
    DecryptedAuditLog,
)
from deviceauth.audit.service import AuditLogger, decrypted_metadata

_GUARDED_RESPONSES = {401: {"model": ApiErrorResponse}, 404: {"model": ApiErrorResponse}}


def _as_datetime(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def _as_epoch(value: datetime | None) -> int | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def _plaintext(result: DecryptResult | None) -> str | None:
    return result.value if isinstance(result, Decrypted) else None


def _log_response(log: DecryptedAuditLog) -> AuditLogResponse:
    return AuditLogResponse(
        id=log.id,
        user_id=_plaintext(log.user_id),
        username=_plaintext(log.username),
        action_type=log.action_type,
        entity_type=log.entity_type,
        entity_id=log.entity_id,
        device_fingerprint=log.device_fingerprint,
        platform=log.platform,
        timestamp_bucket=_as_datetime(log.timestamp_bucket),
        success=log.success,
        error_message=log.error_message,
        metadata=decrypted_metadata(log.metadata),
        created_at=_as_datetime(log.created_at),
        decryption_failures=list(log.decryption_failures),
    )


def create_audit_router(audit_logger: AuditLogger, admin_token: str) -> APIRouter:
    """Build admin audit routes; they answer 404 unless an admin token is configured."""

    def require_admin(x_admin_token: str | None = Header(default=None)) -> None:
        if not admin_token:
            raise NotFoundError("Not found")
        if not x_admin_token or not hmac.compare_digest(
            x_admin_token.encode("utf-8"), admin_token.encode("utf-8")
        ):
            raise AuthenticationError("Invalid admin token", ApiErrorCode.AUTH_TOKEN_INVALID)

    router = APIRouter(
        prefix="/admin/audit",
        tags=["audit"],
        dependencies=[Depends(require_admin)],
    )

    @router.get("/logs", response_model=AuditLogListResponse, responses=_GUARDED_RESPONSES)
    def query_logs(
        action_type: AuditActionType | None = Query(default=None, alias="actionType"),
        platform: AuditPlatform | None = Query(default=None),
        start_date: datetime | None = Query(default=None, alias="startDate"),
        end_date: datetime | None = Query(default=None, alias="endDate"),
        success: bool | None = Query(default=None),
        limit: int = Query(default=1000, ge=1, le=1000),
    ) -> AuditLogListResponse:
        """Return decrypted audit events, newest first."""
        logs = audit_logger.query_logs(
            AuditQueryFilters(
                action_type=action_type,
                platform=platform,
                start_bucket=_as_epoch(start_date),
                end_bucket=_as_epoch(end_date),
                success=success,
                limit=limit,
            )
        )
        items = [_log_response(log) for log in logs]
        return AuditLogListResponse(items=items, count=len(items))

    @router.get("/stats", response_model=AuditStatsResponse, responses=_GUARDED_RESPONSES)
    def get_stats(days: int = Query(default=7, ge=1, le=365)) -> AuditStatsResponse:
        """Aggregate counts per action type and platform."""
        stats = audit_logger.get_stats(days)
        return AuditStatsResponse(
            days=days,
            items=[
                AuditStatsItemResponse(
                    action_type=row.action_type,
                    platform=row.platform,
                    total_count=row.total_count,
                    success_count=row.success_count,
                    failure_count=row.failure_count,
                    unique_devices=row.unique_devices,
                    first_seen=_as_datetime(row.first_seen),
                    last_seen=_as_datetime(row.last_seen),
                )
                for row in stats
            ],
        )

    @router.post(
        "/cleanup", response_model=AuditCleanupResponse, responses=_GUARDED_RESPONSES
    )
    def cleanup() -> AuditCleanupResponse:
        """Delete audit events past the retention window."""
        return AuditCleanupResponse(deleted_count=audit_logger.cleanup())

    return router

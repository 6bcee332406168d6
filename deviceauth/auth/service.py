"""Authentication flows: device registration, device login, hybrid login, refresh."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from deviceauth.api.errors import (
    ApiErrorCode,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from deviceauth.audit.models import (
    AuditActionType,
    AuditEntityType,
    AuditEvent,
    AuditPlatform,
)
from deviceauth.auth.challenges import ChallengeStore
from deviceauth.auth.models import (
    AuthenticatedSession,
    Challenge,
    HybridLoginRequest,
    RegisterDeviceRequest,
    SetPasswordRequest,
    User,
    VerifyDeviceRequest,
)
from deviceauth.auth.repository import CredentialRepository, new_user_id
from deviceauth.auth.signatures import SignatureVerifier, load_public_key
from deviceauth.auth.tokens import TokenIssuer
from deviceauth.auth.validation import (
    validate_password_strength,
    validate_platform,
    validate_username,
)
from deviceauth.core.logging import short_id
from deviceauth.core.security import hash_password, verify_password

LOGGER = logging.getLogger(__name__)

UNKNOWN_DEVICE = "unknown"


class AuditSink(Protocol):
    """Anything that accepts audit events without blocking the caller."""

    def log_event(self, event: AuditEvent) -> None: ...


def _same_key(stored: str, presented: str) -> bool:
    return stored.strip().lower() == presented.strip().lower()


class AuthService:
    """Authentication domain service.

    Every outcome, success or failure, produces one audit event. Failures are
    reported to callers with generic messages; the precise reason only goes to
    the audit trail and the warning log.
    """

    def __init__(
        self,
        *,
        challenges: ChallengeStore,
        users: CredentialRepository,
        verifier: SignatureVerifier,
        tokens: TokenIssuer,
        audit: AuditSink,
    ) -> None:
        self._challenges = challenges
        self._users = users
        self._verifier = verifier
        self._tokens = tokens
        self._audit = audit

    def issue_challenge(
        self, device_id: str | None = None, platform: str | None = None
    ) -> Challenge:
        """Issue a fresh challenge, replacing any earlier one for the same device."""
        challenge = self._challenges.issue(device_id)
        LOGGER.info(
            "challenge_issued",
            extra={"device_id": short_id(device_id), "platform": platform or "unknown"},
        )
        return challenge

    def register_device(self, req: RegisterDeviceRequest) -> AuthenticatedSession:
        """Bind a new user to a device key and start a session."""
        platform = validate_platform(req.platform)
        if load_public_key(req.public_key) is None:
            raise ValidationError("Invalid public key")

        user_id = new_user_id()
        tokens, session = self._tokens.mint_session(user_id, req.device_id)
        try:
            user = self._users.register_device(
                device_id=req.device_id,
                public_key=req.public_key.strip().lower(),
                platform=platform,
                display_name=req.device_name,
                user_id=user_id,
                initial_session=session,
            )
        except ConflictError as exc:
            self._record(
                AuditActionType.SIGNUP_FAILED,
                AuditEntityType.DEVICE,
                device_id=req.device_id,
                platform=platform,
                success=False,
                error_message=exc.message,
                metadata={"failureReason": "device_already_registered"},
            )
            LOGGER.warning(
                "signup_failed",
                extra={
                    "reason": "device_already_registered",
                    "device_id": short_id(req.device_id),
                    "platform": platform,
                },
            )
            raise

        metadata: dict[str, Any] = {"registrationMethod": "device-only"}
        if req.device_model:
            metadata["deviceModel"] = req.device_model
        if req.os_version:
            metadata["osVersion"] = req.os_version
        self._record(
            AuditActionType.SIGNUP_SUCCESS,
            AuditEntityType.USER,
            device_id=user.device_id,
            platform=platform,
            user=user,
            metadata=metadata,
        )
        LOGGER.info(
            "signup_success",
            extra={
                "user_id": short_id(user.user_id),
                "device_id": short_id(user.device_id),
                "platform": platform,
            },
        )
        return AuthenticatedSession(user=user, tokens=tokens)

    def verify_device(self, req: VerifyDeviceRequest) -> AuthenticatedSession:
        """Device-only login: signed challenge from the registered key."""
        challenge = self._challenges.get_active(req.challenge)
        if challenge is None or (
            challenge.device_id is not None and challenge.device_id != req.device_id
        ):
            raise self._device_login_failed(
                req,
                None,
                "expired_challenge",
                AuthenticationError(
                    "Invalid or expired challenge", ApiErrorCode.AUTH_CHALLENGE_EXPIRED
                ),
            )

        user = self._users.find_by_device_id(req.device_id)
        if user is None:
            raise self._device_login_failed(
                req,
                None,
                "device_not_found",
                NotFoundError("Device not registered", ApiErrorCode.DEVICE_NOT_FOUND),
            )

        if not self._verifier.verify(
            challenge.challenge, req.signature, req.public_key, platform=user.platform
        ):
            raise self._device_login_failed(
                req,
                user,
                "invalid_signature",
                AuthenticationError("Invalid signature", ApiErrorCode.AUTH_INVALID_SIGNATURE),
            )

        if not _same_key(user.public_key, req.public_key):
            raise self._device_login_failed(
                req,
                user,
                "public_key_mismatch",
                AuthenticationError(
                    "Public key mismatch", ApiErrorCode.AUTH_PUBLIC_KEY_MISMATCH
                ),
            )

        if not self._challenges.consume(challenge.challenge):
            raise self._device_login_failed(
                req,
                user,
                "expired_challenge",
                AuthenticationError(
                    "Invalid or expired challenge", ApiErrorCode.AUTH_CHALLENGE_EXPIRED
                ),
            )

        tokens = self._tokens.start_session(user.user_id, user.device_id)
        self._users.touch_last_login(user.user_id)
        self._record(
            AuditActionType.LOGIN_SUCCESS,
            AuditEntityType.SESSION,
            device_id=user.device_id,
            platform=user.platform,
            user=user,
            metadata={"authMethod": "device-signature"},
        )
        LOGGER.info(
            "login_success",
            extra={
                "action": "device-signature",
                "user_id": short_id(user.user_id),
                "device_id": short_id(user.device_id),
                "platform": user.platform,
            },
        )
        return AuthenticatedSession(user=user, tokens=tokens)

    def set_password(self, req: SetPasswordRequest) -> User:
        """Enroll (or replace) the username/password second factor."""
        try:
            username = validate_username(req.username)
            validate_password_strength(req.password)
        except ValidationError as exc:
            reason = (
                "invalid_username"
                if exc.error_code == ApiErrorCode.INVALID_USERNAME
                else "weak_password"
            )
            raise self._password_change_failed(req, None, reason, exc)

        user = self._users.find_by_user_and_device(req.user_id, req.device_id)
        if user is None:
            raise self._password_change_failed(
                req,
                None,
                "owner_mismatch",
                NotFoundError("User not found", ApiErrorCode.USER_NOT_FOUND),
            )

        holder = self._users.find_by_username(username)
        if holder is not None and holder.user_id != user.user_id:
            raise self._password_change_failed(
                req,
                user,
                "username_taken",
                ConflictError("Username already taken", ApiErrorCode.USERNAME_TAKEN),
            )

        had_previous_password = user.hybrid_enrolled
        try:
            updated = self._users.set_credentials(
                user.user_id, username, hash_password(req.password)
            )
        except ConflictError as exc:
            raise self._password_change_failed(req, user, "username_taken", exc)

        self._record(
            AuditActionType.PASSWORD_CHANGED,
            AuditEntityType.USER,
            device_id=updated.device_id,
            platform=updated.platform,
            user=updated,
            metadata={"hadPreviousPassword": had_previous_password},
        )
        LOGGER.info(
            "password_changed",
            extra={"user_id": short_id(updated.user_id), "platform": updated.platform},
        )
        return updated

    def login_hybrid(self, req: HybridLoginRequest) -> AuthenticatedSession:
        """Device signature plus password; every factor must hold."""
        invalid_credentials = AuthenticationError(
            "Invalid credentials", ApiErrorCode.AUTH_INVALID_CREDENTIALS
        )

        challenge = self._challenges.get_active(req.challenge)
        if challenge is None or (
            challenge.device_id is not None and challenge.device_id != req.device_id
        ):
            raise self._hybrid_login_failed(req, None, "expired_challenge", invalid_credentials)

        user = self._users.find_by_username(req.username.strip())
        if user is None:
            raise self._hybrid_login_failed(req, None, "user_not_found", invalid_credentials)
        if not user.password_hash:
            raise self._hybrid_login_failed(req, user, "password_not_set", invalid_credentials)

        if not self._verifier.verify(
            challenge.challenge, req.signature, req.public_key, platform=user.platform
        ):
            raise self._hybrid_login_failed(
                req,
                user,
                "invalid_signature",
                AuthenticationError("Invalid signature", ApiErrorCode.AUTH_INVALID_SIGNATURE),
            )
        if not _same_key(user.public_key, req.public_key):
            raise self._hybrid_login_failed(req, user, "public_key_mismatch", invalid_credentials)
        if user.device_id != req.device_id:
            raise self._hybrid_login_failed(req, user, "device_mismatch", invalid_credentials)
        if not verify_password(req.password, user.password_hash):
            raise self._hybrid_login_failed(req, user, "invalid_password", invalid_credentials)

        if not self._challenges.consume(challenge.challenge):
            raise self._hybrid_login_failed(req, user, "expired_challenge", invalid_credentials)

        tokens = self._tokens.start_session(user.user_id, user.device_id)
        self._users.touch_last_login(user.user_id)
        self._record(
            AuditActionType.LOGIN_SUCCESS,
            AuditEntityType.SESSION,
            device_id=user.device_id,
            platform=user.platform,
            user=user,
            metadata={
                "authMethod": "hybrid",
                "usedPassword": True,
                "usedDeviceSignature": True,
            },
        )
        LOGGER.info(
            "login_success",
            extra={
                "action": "hybrid",
                "user_id": short_id(user.user_id),
                "device_id": short_id(user.device_id),
                "platform": user.platform,
            },
        )
        return AuthenticatedSession(user=user, tokens=tokens)

    def refresh(self, refresh_token: str) -> AuthenticatedSession:
        """Rotate the session's token pair."""
        try:
            tokens, session, user = self._tokens.refresh(refresh_token)
        except AuthenticationError as exc:
            self._record(
                AuditActionType.TOKEN_REFRESHED,
                AuditEntityType.SESSION,
                device_id=UNKNOWN_DEVICE,
                success=False,
                error_message=exc.message,
                metadata={"failureReason": "invalid_refresh_token"},
            )
            LOGGER.warning("token_refresh_failed", extra={"reason": "invalid_refresh_token"})
            raise

        self._record(
            AuditActionType.TOKEN_REFRESHED,
            AuditEntityType.SESSION,
            device_id=session.device_id,
            platform=user.platform,
            user=user,
            entity_id=session.session_id,
        )
        LOGGER.info(
            "token_refreshed",
            extra={"user_id": short_id(user.user_id), "device_id": short_id(session.device_id)},
        )
        return AuthenticatedSession(user=user, tokens=tokens)

    def me(self, access_token: str) -> dict[str, str]:
        """Return the claims of a valid access token."""
        return self._tokens.verify_access_token(access_token)

    def _device_login_failed(
        self,
        req: VerifyDeviceRequest,
        user: User | None,
        reason: str,
        error: Exception,
    ) -> Exception:
        return self._login_failed(req.device_id, user, reason, "device-signature", error)

    def _hybrid_login_failed(
        self,
        req: HybridLoginRequest,
        user: User | None,
        reason: str,
        error: Exception,
    ) -> Exception:
        return self._login_failed(
            req.device_id, user, reason, "hybrid", error, username=req.username.strip()
        )

    def _login_failed(
        self,
        device_id: str,
        user: User | None,
        reason: str,
        auth_method: str,
        error: Exception,
        *,
        username: str | None = None,
    ) -> Exception:
        self._record(
            AuditActionType.LOGIN_FAILED,
            AuditEntityType.SESSION,
            device_id=device_id,
            platform=user.platform if user else None,
            user=user,
            username=username,
            success=False,
            error_message=getattr(error, "message", str(error)),
            metadata={"authMethod": auth_method, "failureReason": reason},
        )
        LOGGER.warning(
            "login_failed",
            extra={
                "action": auth_method,
                "reason": reason,
                "user_id": short_id(user.user_id if user else None),
                "device_id": short_id(device_id),
                "platform": user.platform if user else "unknown",
            },
        )
        return error

    def _password_change_failed(
        self,
        req: SetPasswordRequest,
        user: User | None,
        reason: str,
        error: Exception,
    ) -> Exception:
        self._record(
            AuditActionType.PASSWORD_CHANGED,
            AuditEntityType.USER,
            device_id=req.device_id,
            platform=user.platform if user else None,
            user=user,
            entity_id=req.user_id,
            success=False,
            error_message=getattr(error, "message", str(error)),
            metadata={"failureReason": reason},
        )
        LOGGER.warning(
            "password_change_failed",
            extra={
                "reason": reason,
                "user_id": short_id(req.user_id),
                "device_id": short_id(req.device_id),
            },
        )
        return error

    def _record(
        self,
        action_type: AuditActionType,
        entity_type: AuditEntityType,
        *,
        device_id: str,
        platform: str | None = None,
        user: User | None = None,
        username: str | None = None,
        entity_id: str | None = None,
        success: bool = True,
        error_message: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self._audit.log_event(
            AuditEvent(
                action_type=action_type,
                entity_type=entity_type,
                device_id=device_id,
                platform=AuditPlatform.coerce(platform),
                user_id=user.user_id if user else None,
                username=username or (user.username if user else None),
                entity_id=entity_id or (user.user_id if user else None),
                success=success,
                error_message=error_message,
                metadata=metadata,
            )
        )

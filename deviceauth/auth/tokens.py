"""Access/refresh token issuance bound to persisted device sessions."""

from __future__ import annotations

import time
import uuid
from typing import Any, Callable

from deviceauth.api.errors import ApiErrorCode, AuthenticationError
from deviceauth.auth.models import Session, TokenPair, User
from deviceauth.auth.repository import CredentialRepository
from deviceauth.auth.sessions import SessionRepository
from deviceauth.core.config import AuthConfig
from deviceauth.core.security import build_signed_token, decode_signed_token, sha256_hex


class TokenIssuer:
    """Mint, persist and rotate token pairs.

    Access and refresh tokens are signed with different secrets, so a leaked
    access secret cannot forge refresh tokens and vice versa.
    """

    def __init__(
        self,
        config: AuthConfig,
        sessions: SessionRepository,
        users: CredentialRepository,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._sessions = sessions
        self._users = users
        self._clock = clock

    def issue(self, user_id: str, device_id: str) -> TokenPair:
        """Mint a token pair without touching the store."""
        now_ts = int(self._clock())
        access_payload = self._claims(
            user_id, device_id, "access", now_ts, self._config.access_token_ttl_seconds
        )
        refresh_payload = self._claims(
            user_id, device_id, "refresh", now_ts, self._config.refresh_token_ttl_seconds
        )
        return TokenPair(
            access_token=build_signed_token(access_payload, self._config.access_secret),
            refresh_token=build_signed_token(refresh_payload, self._config.refresh_secret),
            expires_in=self._config.access_token_ttl_seconds,
            refresh_expires_at=refresh_payload["exp"],
        )

    def mint_session(self, user_id: str, device_id: str) -> tuple[TokenPair, Session]:
        """Mint a pair and the session row that will hold its hashes."""
        pair = self.issue(user_id, device_id)
        now_ts = int(self._clock())
        session = Session(
            session_id=uuid.uuid4().hex,
            user_id=user_id,
            device_id=device_id,
            access_token_hash=sha256_hex(pair.access_token),
            refresh_token_hash=sha256_hex(pair.refresh_token),
            expires_at=pair.refresh_expires_at,
            created_at=now_ts,
            updated_at=now_ts,
        )
        return pair, session

    def start_session(self, user_id: str, device_id: str) -> TokenPair:
        """Mint a pair and persist its session row."""
        pair, session = self.mint_session(user_id, device_id)
        self._sessions.create(session)
        return pair

    def refresh(self, refresh_token: str) -> tuple[TokenPair, Session, User]:
        """Rotate both tokens of the session holding ``refresh_token``."""
        payload = self._decode(refresh_token, expected_type="refresh")
        old_hash = sha256_hex(refresh_token)
        session = self._sessions.find_by_refresh_hash(old_hash)
        if session is None:
            raise AuthenticationError("Invalid refresh token", ApiErrorCode.AUTH_TOKEN_INVALID)
        now_ts = int(self._clock())
        if session.expires_at <= now_ts:
            raise AuthenticationError("Refresh token expired", ApiErrorCode.AUTH_TOKEN_INVALID)
        if str(payload.get("sub") or "") != session.user_id:
            raise AuthenticationError("Invalid refresh token", ApiErrorCode.AUTH_TOKEN_INVALID)

        user = self._users.find_by_user_id(session.user_id)
        if user is None or user.device_id != session.device_id:
            raise AuthenticationError("Invalid refresh token", ApiErrorCode.AUTH_TOKEN_INVALID)

        pair = self.issue(user.user_id, session.device_id)
        rotated = self._sessions.rotate(
            session_id=session.session_id,
            old_refresh_hash=old_hash,
            access_token_hash=sha256_hex(pair.access_token),
            refresh_token_hash=sha256_hex(pair.refresh_token),
            expires_at=pair.refresh_expires_at,
            updated_at=now_ts,
        )
        if not rotated:
            raise AuthenticationError("Invalid refresh token", ApiErrorCode.AUTH_TOKEN_INVALID)

        updated = session.model_copy(
            update={
                "access_token_hash": sha256_hex(pair.access_token),
                "refresh_token_hash": sha256_hex(pair.refresh_token),
                "expires_at": pair.refresh_expires_at,
                "updated_at": now_ts,
            }
        )
        return pair, updated, user

    def verify_access_token(self, token: str) -> dict[str, str]:
        """Validate access token and return normalized claims."""
        payload = self._decode(token, expected_type="access")
        return {
            "user_id": str(payload.get("sub") or ""),
            "device_id": str(payload.get("device_id") or ""),
        }

    def _claims(
        self, user_id: str, device_id: str, token_type: str, now_ts: int, ttl: int
    ) -> dict[str, Any]:
        return {
            "iss": self._config.issuer,
            "sub": user_id,
            "device_id": device_id,
            "type": token_type,
            "iat": now_ts,
            "exp": now_ts + ttl,
            "jti": uuid.uuid4().hex,
        }

    def _decode(self, token: str, *, expected_type: str) -> dict[str, Any]:
        """Decode signed token and validate issuer/type claims."""
        secret = (
            self._config.refresh_secret
            if expected_type == "refresh"
            else self._config.access_secret
        )
        try:
            payload = decode_signed_token(token, secret, now=int(self._clock()))
        except ValueError as exc:
            raise AuthenticationError(str(exc), ApiErrorCode.AUTH_TOKEN_INVALID) from exc

        if str(payload.get("iss") or "") != self._config.issuer:
            raise AuthenticationError("Invalid token issuer", ApiErrorCode.AUTH_TOKEN_INVALID)
        if str(payload.get("type") or "") != expected_type:
            raise AuthenticationError("Invalid token type", ApiErrorCode.AUTH_TOKEN_INVALID)
        return payload

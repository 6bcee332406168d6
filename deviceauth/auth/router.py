"""Authentication API router."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Header

from deviceauth.api.contracts import (
    ApiErrorResponse,
    AuthMeResponse,
    AuthSessionResponse,
    ChallengeResponse,
    RefreshResponse,
    SetPasswordResponse,
)
from deviceauth.api.errors import ApiErrorCode, AuthenticationError
from deviceauth.auth.models import (
    AuthenticatedSession,
    ChallengeRequest,
    HybridLoginRequest,
    RefreshRequest,
    RegisterDeviceRequest,
    SetPasswordRequest,
    VerifyDeviceRequest,
)
from deviceauth.auth.service import AuthService

_ERRORS_400_401 = {400: {"model": ApiErrorResponse}, 401: {"model": ApiErrorResponse}}


def _extract_bearer_token(authorization: str | None) -> str:
    """Extract bearer token from Authorization header."""
    if not authorization:
        return ""
    parts = authorization.strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


def _session_response(session: AuthenticatedSession) -> AuthSessionResponse:
    return AuthSessionResponse(
        user_id=session.user.user_id,
        display_name=session.user.display_name,
        platform=session.user.platform,
        username=session.user.username,
        access_token=session.tokens.access_token,
        refresh_token=session.tokens.refresh_token,
        expires_in=session.tokens.expires_in,
    )


def create_auth_router(service: AuthService) -> APIRouter:
    """Build the device authentication router.

    Handlers are plain functions; FastAPI runs them in its threadpool, so store
    access, password hashing and signature checks stay off the event loop.
    """
    router = APIRouter(prefix="/auth", tags=["auth"])

    @router.post("/challenge", response_model=ChallengeResponse)
    def issue_challenge(req: ChallengeRequest | None = None) -> ChallengeResponse:
        """Issue a single-use challenge for the client to sign."""
        req = req or ChallengeRequest()
        challenge = service.issue_challenge(req.device_id, req.platform)
        expires_at = datetime.fromtimestamp(challenge.expires_at, tz=timezone.utc)
        return ChallengeResponse(
            challenge=challenge.challenge,
            expires_at=expires_at.isoformat(),
        )

    @router.post(
        "/register-device",
        response_model=AuthSessionResponse,
        responses={400: {"model": ApiErrorResponse}, 409: {"model": ApiErrorResponse}},
    )
    def register_device(req: RegisterDeviceRequest) -> AuthSessionResponse:
        """Register a device key and return a fresh session."""
        return _session_response(service.register_device(req))

    @router.post(
        "/verify-device",
        response_model=AuthSessionResponse,
        responses={**_ERRORS_400_401, 404: {"model": ApiErrorResponse}},
    )
    def verify_device(req: VerifyDeviceRequest) -> AuthSessionResponse:
        """Authenticate with a signed challenge from a registered device."""
        return _session_response(service.verify_device(req))

    @router.post(
        "/set-password",
        response_model=SetPasswordResponse,
        responses={
            400: {"model": ApiErrorResponse},
            404: {"model": ApiErrorResponse},
            409: {"model": ApiErrorResponse},
        },
    )
    def set_password(req: SetPasswordRequest) -> SetPasswordResponse:
        """Enroll a username and password as second factor."""
        user = service.set_password(req)
        return SetPasswordResponse(
            user_id=user.user_id,
            username=user.username or "",
            display_name=user.display_name,
        )

    @router.post(
        "/login-hybrid",
        response_model=AuthSessionResponse,
        responses=_ERRORS_400_401,
    )
    def login_hybrid(req: HybridLoginRequest) -> AuthSessionResponse:
        """Authenticate with device signature plus password."""
        return _session_response(service.login_hybrid(req))

    @router.post("/refresh", response_model=RefreshResponse, responses=_ERRORS_400_401)
    def refresh(req: RefreshRequest) -> RefreshResponse:
        """Rotate refresh token and issue new session tokens."""
        session = service.refresh(req.refresh_token)
        return RefreshResponse(
            access_token=session.tokens.access_token,
            refresh_token=session.tokens.refresh_token,
            expires_in=session.tokens.expires_in,
        )

    @router.get(
        "/me",
        response_model=AuthMeResponse,
        responses={401: {"model": ApiErrorResponse}},
    )
    def me(authorization: str | None = Header(default=None)) -> AuthMeResponse:
        """Return current authenticated claims from access token."""
        token = _extract_bearer_token(authorization)
        if not token:
            raise AuthenticationError("Missing bearer token", ApiErrorCode.AUTH_MISSING_TOKEN)
        claims = service.me(token)
        return AuthMeResponse(user_id=claims["user_id"], device_id=claims["device_id"])

    return router

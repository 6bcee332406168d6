"""Pydantic models for the device authentication domain."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from deviceauth.api.contracts import CamelModel

DevicePlatform = Literal["web", "ios", "android"]
SUPPORTED_PLATFORMS: tuple[str, ...] = ("web", "ios", "android")


class User(BaseModel):
    """Persisted identity bound to exactly one device key."""

    user_id: str
    device_id: str
    public_key: str
    platform: str
    display_name: str = ""
    username: str | None = None
    password_hash: str | None = None
    created_at: int
    last_login: int | None = None

    @property
    def hybrid_enrolled(self) -> bool:
        return bool(self.password_hash)


class Challenge(BaseModel):
    """Single-use authentication nonce."""

    challenge: str
    device_id: str | None = None
    created_at: int
    expires_at: int


class Session(BaseModel):
    """Session row; tokens are kept only as SHA-256 digests."""

    session_id: str
    user_id: str
    device_id: str
    access_token_hash: str
    refresh_token_hash: str
    expires_at: int
    created_at: int
    updated_at: int


class TokenPair(BaseModel):
    """Freshly minted access/refresh tokens."""

    access_token: str
    refresh_token: str
    expires_in: int
    refresh_expires_at: int


class AuthenticatedSession(BaseModel):
    """User plus the token pair of the session just started or rotated."""

    user: User
    tokens: TokenPair


class ChallengeRequest(CamelModel):
    """Challenge request payload."""

    device_id: str | None = None
    platform: str | None = None


class RegisterDeviceRequest(CamelModel):
    """Device registration payload."""

    public_key: str = Field(min_length=1)
    device_id: str = Field(min_length=1)
    platform: str = Field(min_length=1)
    device_name: str | None = Field(default=None, max_length=100)
    device_model: str | None = None
    os_version: str | None = None


class VerifyDeviceRequest(CamelModel):
    """Device-only login payload."""

    challenge: str = Field(min_length=1)
    signature: str = Field(min_length=1)
    device_id: str = Field(min_length=1)
    public_key: str = Field(min_length=1)


class SetPasswordRequest(CamelModel):
    """Hybrid auth enrollment payload."""

    user_id: str = Field(min_length=1)
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    device_id: str = Field(min_length=1)


class HybridLoginRequest(CamelModel):
    """Device signature plus username/password payload."""

    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    challenge: str = Field(min_length=1)
    signature: str = Field(min_length=1)
    device_id: str = Field(min_length=1)
    public_key: str = Field(min_length=1)


class RefreshRequest(CamelModel):
    """Refresh request payload."""

    refresh_token: str = Field(min_length=1)


class SignatureDiagnosticsRequest(CamelModel):
    """Signature compatibility check payload."""

    message: str = Field(min_length=1)
    signature: str = Field(min_length=1)
    public_key: str = Field(min_length=1)
    platform: str | None = None


class HashMessageRequest(CamelModel):
    """Message whose SHA-256 digest the client wants to compare."""

    message: str = Field(min_length=1)

"""Shared API error types and helpers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi import HTTPException


class ApiErrorCode(StrEnum):
    """Machine-readable API error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_PLATFORM = "INVALID_PLATFORM"
    INVALID_USERNAME = "INVALID_USERNAME"
    WEAK_PASSWORD = "WEAK_PASSWORD"
    AUTH_MISSING_TOKEN = "AUTH_MISSING_TOKEN"
    AUTH_INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"
    AUTH_INVALID_SIGNATURE = "AUTH_INVALID_SIGNATURE"
    AUTH_CHALLENGE_EXPIRED = "AUTH_CHALLENGE_EXPIRED"
    AUTH_PUBLIC_KEY_MISMATCH = "AUTH_PUBLIC_KEY_MISMATCH"
    AUTH_TOKEN_INVALID = "AUTH_TOKEN_INVALID"
    DEVICE_NOT_FOUND = "DEVICE_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    DEVICE_ALREADY_REGISTERED = "DEVICE_ALREADY_REGISTERED"
    USERNAME_TAKEN = "USERNAME_TAKEN"
    REQUEST_TOO_LARGE = "REQUEST_TOO_LARGE"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ApiError(HTTPException):
    """HTTP exception carrying stable API error envelope."""

    def __init__(
        self, *, status_code: int, error_code: ApiErrorCode, message: str
    ) -> None:
        """Build an HTTP exception with standard detail structure."""
        super().__init__(
            status_code=status_code,
            detail={"error_code": str(error_code), "message": message},
        )
        self.error_code = error_code
        self.message = message


class ValidationError(ApiError):
    """Malformed or missing input; rejected before any side effect."""

    def __init__(
        self, message: str, error_code: ApiErrorCode = ApiErrorCode.VALIDATION_ERROR
    ) -> None:
        super().__init__(status_code=400, error_code=error_code, message=message)


class AuthenticationError(ApiError):
    """Bad signature, password, token, or missing/expired challenge."""

    def __init__(
        self,
        message: str = "Invalid credentials",
        error_code: ApiErrorCode = ApiErrorCode.AUTH_INVALID_CREDENTIALS,
    ) -> None:
        super().__init__(status_code=401, error_code=error_code, message=message)


class NotFoundError(ApiError):
    """Unknown device or user."""

    def __init__(
        self, message: str, error_code: ApiErrorCode = ApiErrorCode.NOT_FOUND
    ) -> None:
        super().__init__(status_code=404, error_code=error_code, message=message)


class ConflictError(ApiError):
    """Uniqueness violation on device id or username."""

    def __init__(self, message: str, error_code: ApiErrorCode) -> None:
        super().__init__(status_code=409, error_code=error_code, message=message)


class InternalError(ApiError):
    """Store or crypto infrastructure failure; details stay in the logs."""

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(
            status_code=500,
            error_code=ApiErrorCode.INTERNAL_SERVER_ERROR,
            message=message,
        )


def to_error_payload(detail: Any, status_code: int) -> dict[str, str]:
    """Normalize HTTP exception detail into stable error payload."""
    if isinstance(detail, dict):
        error_code = str(detail.get("error_code") or f"HTTP_{status_code}")
        message = str(detail.get("message") or detail.get("detail") or "HTTP error")
        return {"error_code": error_code, "message": message}
    return {
        "error_code": f"HTTP_{status_code}",
        "message": str(detail or "HTTP error"),
    }

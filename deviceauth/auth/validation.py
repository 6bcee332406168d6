"""Input rules for platforms, usernames and passwords."""

from __future__ import annotations

import re

from deviceauth.api.errors import ApiErrorCode, ValidationError
from deviceauth.auth.models import SUPPORTED_PLATFORMS

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{2,29}$")
PASSWORD_MIN_LENGTH = 8
PASSWORD_SPECIAL_CHARS = "!@#$%^&*(),.?\":{}|<>"


def validate_platform(platform: str) -> str:
    """Return the normalized platform or raise ``INVALID_PLATFORM``."""
    normalized = (platform or "").strip().lower()
    if normalized not in SUPPORTED_PLATFORMS:
        raise ValidationError(
            f"Platform must be one of: {', '.join(SUPPORTED_PLATFORMS)}",
            ApiErrorCode.INVALID_PLATFORM,
        )
    return normalized


def validate_username(username: str) -> str:
    """Usernames are 3-30 chars of letters, digits, ``_`` or ``-``, starting alphanumeric."""
    normalized = (username or "").strip()
    if not USERNAME_PATTERN.match(normalized):
        raise ValidationError(
            "Username must be 3-30 characters, start with a letter or digit, "
            "and contain only letters, digits, underscores or hyphens",
            ApiErrorCode.INVALID_USERNAME,
        )
    return normalized


def password_issues(password: str) -> list[str]:
    """List unmet password requirements; empty means the password is strong enough."""
    issues: list[str] = []
    if len(password) < PASSWORD_MIN_LENGTH:
        issues.append(f"at least {PASSWORD_MIN_LENGTH} characters")
    if not any(ch.isupper() for ch in password):
        issues.append("an uppercase letter")
    if not any(ch.islower() for ch in password):
        issues.append("a lowercase letter")
    if not any(ch.isdigit() for ch in password):
        issues.append("a digit")
    if not any(ch in PASSWORD_SPECIAL_CHARS for ch in password):
        issues.append("a special character")
    return issues


def validate_password_strength(password: str) -> None:
    issues = password_issues(password or "")
    if issues:
        raise ValidationError(
            "Password must contain " + ", ".join(issues),
            ApiErrorCode.WEAK_PASSWORD,
        )

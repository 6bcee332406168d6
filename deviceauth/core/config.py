"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass

DEV_ACCESS_SECRET = "dev-access-secret-change-me"
DEV_REFRESH_SECRET = "dev-refresh-secret-change-me"
MIN_SECRET_LENGTH = 32
AUDIT_KEY_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


class ConfigError(RuntimeError):
    """Raised when process configuration is unusable at startup."""


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class AuthConfig:
    """Token signing configuration."""

    access_secret: str
    refresh_secret: str
    access_token_ttl_seconds: int
    refresh_token_ttl_seconds: int
    issuer: str


@dataclass(frozen=True)
class ChallengeConfig:
    """Challenge lifetime and signature compatibility settings."""

    ttl_seconds: int
    allow_raw_message_signatures: bool


@dataclass(frozen=True)
class AuditConfig:
    """Audit trail encryption and retention settings."""

    encryption_key: str
    retention_days: int
    queue_max_size: int
    admin_token: str


@dataclass(frozen=True)
class StoreConfig:
    """Relational store location."""

    sqlite_path: str


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class SecurityConfig:
    """API perimeter security settings."""

    cors_allowed_origins: list[str]
    request_max_bytes: int


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    environment: str
    auth: AuthConfig
    challenge: ChallengeConfig
    audit: AuditConfig
    store: StoreConfig
    logging: LoggingConfig
    security: SecurityConfig

    @property
    def is_production(self) -> bool:
        """Return whether the production profile is active."""
        return self.environment == "production"

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        environment = os.getenv("APP_ENV", "development").strip().lower() or "development"
        access_secret = os.getenv("AUTH_ACCESS_SECRET", "").strip() or DEV_ACCESS_SECRET
        refresh_secret = os.getenv("AUTH_REFRESH_SECRET", "").strip() or DEV_REFRESH_SECRET
        access_ttl = int(os.getenv("AUTH_ACCESS_TOKEN_TTL_SECONDS", "900"))
        refresh_ttl = int(os.getenv("AUTH_REFRESH_TOKEN_TTL_SECONDS", str(30 * 24 * 3600)))
        issuer = os.getenv("AUTH_ISSUER", "deviceauth").strip() or "deviceauth"
        challenge_ttl = int(os.getenv("CHALLENGE_TTL_SECONDS", "300"))
        allow_raw = _env_flag("SIGNATURE_ALLOW_RAW_MESSAGE")
        audit_key = os.getenv("AUDIT_ENCRYPTION_KEY", "").strip()
        retention_days = int(os.getenv("AUDIT_RETENTION_DAYS", "30"))
        queue_max_size = int(os.getenv("AUDIT_QUEUE_MAX_SIZE", "1000"))
        admin_token = os.getenv("AUDIT_ADMIN_TOKEN", "").strip()
        sqlite_path = (
            os.getenv("DATABASE_PATH", "runtime/deviceauth.db").strip()
            or "runtime/deviceauth.db"
        )
        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:8081,http://localhost:19006",
            ).split(",")
            if origin.strip()
        ]
        request_max_bytes = int(os.getenv("REQUEST_MAX_BYTES", str(64 * 1024)))

        return AppConfig(
            environment=environment,
            auth=AuthConfig(
                access_secret=access_secret,
                refresh_secret=refresh_secret,
                access_token_ttl_seconds=access_ttl,
                refresh_token_ttl_seconds=refresh_ttl,
                issuer=issuer,
            ),
            challenge=ChallengeConfig(
                ttl_seconds=challenge_ttl,
                allow_raw_message_signatures=allow_raw,
            ),
            audit=AuditConfig(
                encryption_key=audit_key,
                retention_days=retention_days,
                queue_max_size=queue_max_size,
                admin_token=admin_token,
            ),
            store=StoreConfig(sqlite_path=sqlite_path),
            logging=LoggingConfig(level=log_level),
            security=SecurityConfig(
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=request_max_bytes,
            ),
        )

    def validate(self) -> None:
        """Reject configuration that must not reach a running process."""
        key = self.audit.encryption_key
        if not key:
            raise ConfigError(
                "AUDIT_ENCRYPTION_KEY is required. "
                "Generate one with: python scripts/generate_audit_key.py"
            )
        if len(key) != 64:
            raise ConfigError(
                "AUDIT_ENCRYPTION_KEY must be 64 hex characters (32 bytes). "
                f"Current length: {len(key)}"
            )
        if not AUDIT_KEY_PATTERN.match(key):
            raise ConfigError("AUDIT_ENCRYPTION_KEY must contain only hex characters")

        if self.auth.access_token_ttl_seconds <= 0 or self.auth.refresh_token_ttl_seconds <= 0:
            raise ConfigError("Token TTLs must be positive")
        if self.challenge.ttl_seconds <= 0:
            raise ConfigError("CHALLENGE_TTL_SECONDS must be positive")

        if not self.is_production:
            return

        for name, value, default in (
            ("AUTH_ACCESS_SECRET", self.auth.access_secret, DEV_ACCESS_SECRET),
            ("AUTH_REFRESH_SECRET", self.auth.refresh_secret, DEV_REFRESH_SECRET),
        ):
            if value == default:
                raise ConfigError(f"{name} must be set in production")
            if len(value) < MIN_SECRET_LENGTH:
                raise ConfigError(
                    f"{name} must be at least {MIN_SECRET_LENGTH} characters in production"
                )
        if self.auth.access_secret == self.auth.refresh_secret:
            raise ConfigError("AUTH_ACCESS_SECRET and AUTH_REFRESH_SECRET must differ")

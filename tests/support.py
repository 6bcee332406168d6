from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    decode_dss_signature,
)

from deviceauth.audit.cipher import FieldCipher
from deviceauth.audit.models import AuditEvent
from deviceauth.auth.challenges import ChallengeStore
from deviceauth.auth.repository import CredentialRepository
from deviceauth.auth.service import AuthService
from deviceauth.auth.sessions import SessionRepository
from deviceauth.auth.signatures import SignatureVerifier
from deviceauth.auth.tokens import TokenIssuer
from deviceauth.core.config import AuthConfig
from deviceauth.core.database import Database

AUDIT_KEY_HEX = "a1" * 32
STRONG_PASSWORD = "Sup3r$ecret"


@dataclass
class FakeClock:
    now: float = 1_700_000_000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class RecordingAuditSink:
    events: list[AuditEvent] = field(default_factory=list)

    def log_event(self, event: AuditEvent) -> None:
        self.events.append(event)

    @property
    def last(self) -> AuditEvent:
        return self.events[-1]


@dataclass
class DeviceKey:
    private_key: ec.EllipticCurvePrivateKey

    @staticmethod
    def generate() -> "DeviceKey":
        return DeviceKey(ec.generate_private_key(ec.SECP256R1()))

    def public_hex(self, *, compressed: bool = False) -> str:
        point_format = (
            serialization.PublicFormat.CompressedPoint
            if compressed
            else serialization.PublicFormat.UncompressedPoint
        )
        return (
            self.private_key.public_key()
            .public_bytes(serialization.Encoding.X962, point_format)
            .hex()
        )

    def sign_der(self, message: str) -> str:
        return self.private_key.sign(message.encode("utf-8"), ec.ECDSA(hashes.SHA256())).hex()

    def sign_compact(self, message: str) -> str:
        return _der_to_compact_hex(
            self.private_key.sign(message.encode("utf-8"), ec.ECDSA(hashes.SHA256()))
        )

    def sign_raw_message(self, message_hex: str) -> str:
        """Sign the hex-decoded message as if it already were the digest."""
        return _der_to_compact_hex(
            self.private_key.sign(
                bytes.fromhex(message_hex), ec.ECDSA(Prehashed(hashes.SHA256()))
            )
        )


def _der_to_compact_hex(der: bytes) -> str:
    r, s = decode_dss_signature(der)
    return (r.to_bytes(32, "big") + s.to_bytes(32, "big")).hex()


def auth_config() -> AuthConfig:
    return AuthConfig(
        access_secret="test-access-secret",
        refresh_secret="test-refresh-secret",
        access_token_ttl_seconds=900,
        refresh_token_ttl_seconds=30 * 24 * 3600,
        issuer="deviceauth-test",
    )


@dataclass
class AuthHarness:
    database: Database
    clock: FakeClock
    audit: RecordingAuditSink
    challenges: ChallengeStore
    users: CredentialRepository
    sessions: SessionRepository
    tokens: TokenIssuer
    service: AuthService

    def session_count(self, user_id: str) -> int:
        with self.database.transaction() as cursor:
            row = cursor.execute(
                "SELECT COUNT(*) FROM device_sessions WHERE user_id = ?", (user_id,)
            ).fetchone()
        return int(row[0])

    def user_count(self) -> int:
        with self.database.transaction() as cursor:
            return int(cursor.execute("SELECT COUNT(*) FROM users").fetchone()[0])


def build_auth_harness(tmp_path: Path, *, allow_raw_message: bool = False) -> AuthHarness:
    database = Database(tmp_path / "auth.db")
    clock = FakeClock()
    audit = RecordingAuditSink()
    challenges = ChallengeStore(database, ttl_seconds=300, clock=clock)
    users = CredentialRepository(database, clock=clock)
    sessions = SessionRepository(database)
    tokens = TokenIssuer(auth_config(), sessions, users, clock=clock)
    service = AuthService(
        challenges=challenges,
        users=users,
        verifier=SignatureVerifier(allow_raw_message=allow_raw_message),
        tokens=tokens,
        audit=audit,
    )
    return AuthHarness(
        database=database,
        clock=clock,
        audit=audit,
        challenges=challenges,
        users=users,
        sessions=sessions,
        tokens=tokens,
        service=service,
    )


def field_cipher() -> FieldCipher:
    return FieldCipher.from_hex(AUDIT_KEY_HEX)

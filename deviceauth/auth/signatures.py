"""P-256 ECDSA verification tolerant of differing client signature encodings.

Web clients sign with a library that emits the 64-byte ``r || s`` form, native
clients may emit DER. Both hash the challenge with SHA-256 before signing.
Verification walks a fixed, ordered tuple of named strategies; each one is a
pure function of ``(message, signature, public_key)`` that returns a boolean
and keeps its own decoding failures to itself.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Callable

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    decode_dss_signature,
    encode_dss_signature,
)

LOGGER = logging.getLogger(__name__)

CURVE = ec.SECP256R1()
COMPONENT_SIZE = 32
COMPACT_SIGNATURE_SIZE = 2 * COMPONENT_SIZE
DER_SEQUENCE_TAG = 0x30

StrategyCheck = Callable[[str, bytes, ec.EllipticCurvePublicKey], bool]


@dataclass(frozen=True)
class VerificationStrategy:
    """One named way of interpreting a (message, signature, key) triple."""

    name: str
    check: StrategyCheck
    weak: bool = False


def decode_hex(value: str) -> bytes | None:
    """Decode a hex string, returning ``None`` when it is not valid hex."""
    try:
        return bytes.fromhex(value.strip())
    except (ValueError, AttributeError):
        return None


def load_public_key(public_key_hex: str) -> ec.EllipticCurvePublicKey | None:
    """Parse a SEC1-encoded P-256 point from hex."""
    raw = decode_hex(public_key_hex)
    if not raw:
        return None
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(CURVE, raw)
    except ValueError:
        return None


def message_digest(message: str) -> bytes:
    """SHA-256 of the UTF-8 encoded challenge string."""
    return hashlib.sha256(message.encode("utf-8")).digest()


def der_to_compact(signature: bytes) -> bytes:
    """Convert a DER signature into the fixed-width ``r || s`` form.

    Sign-padding bytes disappear in the integer round trip and each component
    is left-padded back to 32 bytes. Raises ``ValueError`` on malformed input.
    """
    r, s = decode_dss_signature(signature)
    try:
        return r.to_bytes(COMPONENT_SIZE, "big") + s.to_bytes(COMPONENT_SIZE, "big")
    except OverflowError as exc:
        raise ValueError("DER integer wider than curve order") from exc


def _verify_compact(
    signature: bytes, digest: bytes, public_key: ec.EllipticCurvePublicKey
) -> bool:
    if len(signature) != COMPACT_SIGNATURE_SIZE or len(digest) != hashlib.sha256().digest_size:
        return False
    r = int.from_bytes(signature[:COMPONENT_SIZE], "big")
    s = int.from_bytes(signature[COMPONENT_SIZE:], "big")
    try:
        public_key.verify(
            encode_dss_signature(r, s),
            digest,
            ec.ECDSA(Prehashed(hashes.SHA256())),
        )
    except (InvalidSignature, ValueError):
        return False
    return True


def compact_over_digest(
    message: str, signature: bytes, public_key: ec.EllipticCurvePublicKey
) -> bool:
    """Fixed-length signature over SHA-256(message)."""
    return _verify_compact(signature, message_digest(message), public_key)


def der_over_digest(
    message: str, signature: bytes, public_key: ec.EllipticCurvePublicKey
) -> bool:
    """DER signature, normalized to fixed-length, over SHA-256(message)."""
    if len(signature) <= COMPACT_SIGNATURE_SIZE or signature[0] != DER_SEQUENCE_TAG:
        return False
    try:
        compact = der_to_compact(signature)
    except ValueError:
        return False
    return _verify_compact(compact, message_digest(message), public_key)


def compact_over_raw_message(
    message: str, signature: bytes, public_key: ec.EllipticCurvePublicKey
) -> bool:
    """Fixed-length signature whose signer used the hex-decoded challenge as digest."""
    raw = decode_hex(message)
    if raw is None:
        return False
    return _verify_compact(signature, raw, public_key)


COMPACT_DIGEST = VerificationStrategy("compact_digest", compact_over_digest)
DER_DIGEST = VerificationStrategy("der_digest", der_over_digest)
COMPACT_RAW_MESSAGE = VerificationStrategy(
    "compact_raw_message", compact_over_raw_message, weak=True
)


def describe_signature_format(signature_hex: str) -> str:
    """Human-readable guess of the signature encoding."""
    raw = decode_hex(signature_hex)
    if raw is None:
        return "invalid hex"
    if len(raw) == COMPACT_SIGNATURE_SIZE:
        return "compact (64 bytes)"
    if raw and raw[0] == DER_SEQUENCE_TAG:
        return f"DER ({len(raw)} bytes)"
    return f"unknown ({len(raw)} bytes)"


class SignatureVerifier:
    """Try each enabled strategy in order; the first success wins."""

    def __init__(self, *, allow_raw_message: bool = False) -> None:
        strategies = [COMPACT_DIGEST, DER_DIGEST]
        if allow_raw_message:
            strategies.append(COMPACT_RAW_MESSAGE)
        self._strategies: tuple[VerificationStrategy, ...] = tuple(strategies)

    @property
    def strategies(self) -> tuple[VerificationStrategy, ...]:
        return self._strategies

    def match(
        self,
        message: str,
        signature_hex: str,
        public_key_hex: str,
        *,
        platform: str | None = None,
    ) -> str | None:
        """Return the name of the strategy that verified, or ``None``."""
        public_key = load_public_key(public_key_hex)
        signature = decode_hex(signature_hex)
        if public_key is None or not signature:
            LOGGER.info(
                "signature_input_undecodable",
                extra={"platform": platform or "unknown"},
            )
            return None

        for strategy in self._strategies:
            if not strategy.check(message, signature, public_key):
                continue
            if strategy.weak:
                LOGGER.warning(
                    "signature_verified_with_weak_strategy",
                    extra={"strategy": strategy.name, "platform": platform or "unknown"},
                )
            else:
                LOGGER.debug(
                    "signature_verified",
                    extra={"strategy": strategy.name, "platform": platform or "unknown"},
                )
            return strategy.name

        LOGGER.info(
            "signature_strategies_exhausted",
            extra={"platform": platform or "unknown"},
        )
        return None

    def verify(
        self,
        message: str,
        signature_hex: str,
        public_key_hex: str,
        *,
        platform: str | None = None,
    ) -> bool:
        """Return whether any enabled strategy accepts the signature."""
        return self.match(message, signature_hex, public_key_hex, platform=platform) is not None

from __future__ import annotations

import hashlib
import logging

import pytest
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from deviceauth.auth.signatures import (
    SignatureVerifier,
    compact_over_digest,
    der_over_digest,
    der_to_compact,
    describe_signature_format,
    load_public_key,
)
from tests.support import DeviceKey

MESSAGE = hashlib.sha256(b"challenge-seed").hexdigest()


def test_compact_signature_verifies_with_first_strategy() -> None:
    key = DeviceKey.generate()
    verifier = SignatureVerifier()

    strategy = verifier.match(MESSAGE, key.sign_compact(MESSAGE), key.public_hex())

    assert strategy == "compact_digest"


def test_der_signature_verifies_after_normalization() -> None:
    key = DeviceKey.generate()
    verifier = SignatureVerifier()

    strategy = verifier.match(MESSAGE, key.sign_der(MESSAGE), key.public_hex())

    assert strategy == "der_digest"


def test_compressed_public_key_is_accepted() -> None:
    key = DeviceKey.generate()

    assert SignatureVerifier().verify(
        MESSAGE, key.sign_compact(MESSAGE), key.public_hex(compressed=True)
    )


@pytest.mark.parametrize("encoding", ["compact", "der"])
def test_signature_fails_against_other_key(encoding: str) -> None:
    signer = DeviceKey.generate()
    other = DeviceKey.generate()
    signature = signer.sign_compact(MESSAGE) if encoding == "compact" else signer.sign_der(MESSAGE)

    assert not SignatureVerifier().verify(MESSAGE, signature, other.public_hex())


def test_signature_fails_for_other_message() -> None:
    key = DeviceKey.generate()

    assert not SignatureVerifier().verify(
        MESSAGE + "00", key.sign_compact(MESSAGE), key.public_hex()
    )


@pytest.mark.parametrize(
    ("signature", "public_key"),
    [
        ("not-hex", None),
        ("", None),
        ("ab" * 64, "zz"),
        ("ab" * 64, "04" + "00" * 64),
        ("30" + "ff" * 70, None),
    ],
)
def test_malformed_input_yields_false(signature: str, public_key: str | None) -> None:
    key = DeviceKey.generate()

    assert not SignatureVerifier().verify(MESSAGE, signature, public_key or key.public_hex())


def test_raw_message_strategy_is_disabled_by_default() -> None:
    key = DeviceKey.generate()
    signature = key.sign_raw_message(MESSAGE)

    assert SignatureVerifier().match(MESSAGE, signature, key.public_hex()) is None


def test_raw_message_strategy_logs_warning_when_enabled(
    caplog: pytest.LogCaptureFixture,
) -> None:
    key = DeviceKey.generate()
    signature = key.sign_raw_message(MESSAGE)
    verifier = SignatureVerifier(allow_raw_message=True)

    with caplog.at_level(logging.WARNING, logger="deviceauth.auth.signatures"):
        strategy = verifier.match(MESSAGE, signature, key.public_hex())

    assert strategy == "compact_raw_message"
    assert "signature_verified_with_weak_strategy" in caplog.text


def test_strategy_order_is_fixed() -> None:
    names = [s.name for s in SignatureVerifier(allow_raw_message=True).strategies]

    assert names == ["compact_digest", "der_digest", "compact_raw_message"]


def test_der_to_compact_strips_sign_padding_and_left_pads() -> None:
    r = (1 << 255) | 7
    s = 42
    der = encode_dss_signature(r, s)

    compact = der_to_compact(der)

    assert len(compact) == 64
    assert compact[:32] == r.to_bytes(32, "big")
    assert compact[32:] == s.to_bytes(32, "big")


def test_der_to_compact_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        der_to_compact(b"\x30\x02\x01")


def test_strategies_are_pure_booleans() -> None:
    key = DeviceKey.generate()
    public_key = load_public_key(key.public_hex())
    assert public_key is not None
    compact = bytes.fromhex(key.sign_compact(MESSAGE))

    assert compact_over_digest(MESSAGE, compact, public_key) is True
    assert der_over_digest(MESSAGE, compact, public_key) is False
    assert compact_over_digest(MESSAGE, b"\x00" * 10, public_key) is False


def test_describe_signature_format() -> None:
    key = DeviceKey.generate()

    assert describe_signature_format(key.sign_compact(MESSAGE)) == "compact (64 bytes)"
    assert describe_signature_format(key.sign_der(MESSAGE)).startswith("DER")
    assert describe_signature_format("xyz") == "invalid hex"

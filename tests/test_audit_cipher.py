from __future__ import annotations

import pytest

from deviceauth.audit.cipher import (
    IV_SIZE,
    TAG_SIZE,
    Decrypted,
    DecryptionFailed,
    FieldCipher,
)
from tests.support import field_cipher


def test_encrypt_uses_fresh_iv_and_separate_tag() -> None:
    cipher = field_cipher()

    first = cipher.encrypt("user-123")
    second = cipher.encrypt("user-123")

    assert len(first.iv) == IV_SIZE
    assert len(first.tag) == TAG_SIZE
    assert first.iv != second.iv
    assert first.ciphertext != second.ciphertext
    assert cipher.decrypt(first.ciphertext, first.iv, first.tag) == Decrypted("user-123")


def test_tampered_ciphertext_yields_failure_variant() -> None:
    cipher = field_cipher()
    sealed = cipher.encrypt("alice")
    tampered = bytes([sealed.ciphertext[0] ^ 0x01]) + sealed.ciphertext[1:]

    result = cipher.decrypt(tampered, sealed.iv, sealed.tag)

    assert isinstance(result, DecryptionFailed)
    assert result.reason == "authentication_failed"


def test_tampered_tag_and_bad_iv_yield_failure_variant() -> None:
    cipher = field_cipher()
    sealed = cipher.encrypt("alice")

    assert isinstance(cipher.decrypt(sealed.ciphertext, sealed.iv, b"\x00" * TAG_SIZE), DecryptionFailed)
    assert cipher.decrypt(sealed.ciphertext, b"short", sealed.tag) == DecryptionFailed("invalid_iv")


def test_other_key_cannot_decrypt() -> None:
    sealed = field_cipher().encrypt("alice")

    result = FieldCipher.from_hex("b2" * 32).decrypt(sealed.ciphertext, sealed.iv, sealed.tag)

    assert isinstance(result, DecryptionFailed)


def test_key_must_be_32_bytes() -> None:
    with pytest.raises(ValueError):
        FieldCipher.from_hex("ab" * 16)

"""AES-256-GCM field encryption for audit records."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

KEY_SIZE = 32
IV_SIZE = 12
TAG_SIZE = 16


@dataclass(frozen=True)
class EncryptedField:
    """Ciphertext with its IV and authentication tag kept separately."""

    ciphertext: bytes
    iv: bytes
    tag: bytes


@dataclass(frozen=True)
class Decrypted:
    value: str


@dataclass(frozen=True)
class DecryptionFailed:
    reason: str


DecryptResult = Union[Decrypted, DecryptionFailed]


class FieldCipher:
    """Encrypt and decrypt single text fields with a process-wide key.

    A fresh random IV is drawn for every call, so equal plaintexts never
    produce equal ciphertexts.
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_SIZE:
            raise ValueError(f"Audit key must be {KEY_SIZE} bytes, got {len(key)}")
        self._aead = AESGCM(key)

    @classmethod
    def from_hex(cls, key_hex: str) -> "FieldCipher":
        """Build from a 64-character hex key; raises ``ValueError`` otherwise."""
        return cls(bytes.fromhex(key_hex))

    def encrypt(self, plaintext: str) -> EncryptedField:
        iv = os.urandom(IV_SIZE)
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        return EncryptedField(ciphertext=sealed[:-TAG_SIZE], iv=iv, tag=sealed[-TAG_SIZE:])

    def decrypt(self, ciphertext: bytes, iv: bytes, tag: bytes) -> DecryptResult:
        """Return the plaintext, or a failure variant for tampered or foreign data."""
        if len(iv) != IV_SIZE:
            return DecryptionFailed(reason="invalid_iv")
        if len(tag) != TAG_SIZE:
            return DecryptionFailed(reason="invalid_tag")
        try:
            plaintext = self._aead.decrypt(bytes(iv), bytes(ciphertext) + bytes(tag), None)
        except InvalidTag:
            return DecryptionFailed(reason="authentication_failed")
        try:
            return Decrypted(value=plaintext.decode("utf-8"))
        except UnicodeDecodeError:
            return DecryptionFailed(reason="invalid_encoding")

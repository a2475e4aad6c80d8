# backend/app/security/encryption.py
"""
Server-side encryption for third-party API credentials.

Key points:
- AES-256-GCM, 12-byte random nonce, 16-byte authentication tag
- Key derived ONCE from (ENCRYPTION_SECRET, ENCRYPTION_SALT) with scrypt
  (N=32768, r=8, p=1) and held in an immutable VaultKey
- Envelope format: base64(nonce[12] | tag[16] | ciphertext)
- Decryption fails closed: any tampering, truncation or wrong key
  raises DecryptionError
"""
import base64
import binascii
import json
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from backend.app.core.config import settings

NONCE_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32

SCRYPT_N = 32768
SCRYPT_R = 8
SCRYPT_P = 1


class DecryptionError(Exception):
    """Raised when an envelope cannot be authenticated or decoded."""


@dataclass(frozen=True)
class VaultKey:
    """Derived symmetric key. Build it once at startup and pass it around."""

    key: bytes

    def __post_init__(self):
        if len(self.key) != KEY_LENGTH:
            raise ValueError(f"Vault key must be {KEY_LENGTH} bytes")

    def __repr__(self) -> str:
        return "VaultKey(<redacted>)"

    @classmethod
    def derive(cls, secret: str, salt: str) -> "VaultKey":
        kdf = Scrypt(
            salt=salt.encode("utf-8"),
            length=KEY_LENGTH,
            n=SCRYPT_N,
            r=SCRYPT_R,
            p=SCRYPT_P,
        )
        return cls(kdf.derive(secret.encode("utf-8")))


class CredentialVault:
    """Encrypts and decrypts small JSON payloads with a fixed VaultKey."""

    def __init__(self, vault_key: VaultKey):
        self._aead = AESGCM(vault_key.key)

    def encrypt(self, data: Any) -> str:
        nonce = os.urandom(NONCE_LENGTH)
        plaintext = json.dumps(data, separators=(",", ":")).encode("utf-8")

        # AESGCM appends the tag to the ciphertext; the envelope stores it up front
        sealed = self._aead.encrypt(nonce, plaintext, None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]

        return base64.b64encode(nonce + tag + ciphertext).decode("ascii")

    def decrypt(self, envelope: str) -> Any:
        try:
            raw = base64.b64decode(envelope, validate=True)
        except (binascii.Error, ValueError, TypeError) as exc:
            raise DecryptionError("Envelope is not valid base64") from exc

        if len(raw) < NONCE_LENGTH + TAG_LENGTH:
            raise DecryptionError("Envelope is truncated")

        nonce = raw[:NONCE_LENGTH]
        tag = raw[NONCE_LENGTH:NONCE_LENGTH + TAG_LENGTH]
        ciphertext = raw[NONCE_LENGTH + TAG_LENGTH:]

        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as exc:
            raise DecryptionError("Envelope failed authentication") from exc

        try:
            return json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise DecryptionError("Envelope payload is not JSON") from exc


@lru_cache()
def get_vault_key() -> VaultKey:
    """Derive the process-wide key from settings (runs scrypt once)."""
    return VaultKey.derive(settings.ENCRYPTION_SECRET, settings.ENCRYPTION_SALT)


def get_vault() -> CredentialVault:
    return CredentialVault(get_vault_key())

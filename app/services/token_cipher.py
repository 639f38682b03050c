"""Authenticated symmetric encryption for protecting stored tokens.

Blobs are ``base64(nonce || tag || ciphertext)`` produced with AES-256-GCM,
using a 16-byte random nonce per call and a 16-byte authentication tag.
"""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

KEY_SIZE_BYTES = 32
NONCE_SIZE_BYTES = 16
TAG_SIZE_BYTES = 16


class TokenIntegrityError(ValueError):
    """Raised when a ciphertext blob is malformed or fails authentication."""


class TokenCipherService:
    """Encrypt and decrypt sensitive strings with a static 256-bit key."""

    def __init__(self, *, key: bytes) -> None:
        if len(key) != KEY_SIZE_BYTES:
            raise ValueError(
                f"Token encryption key must be {KEY_SIZE_BYTES} bytes, got {len(key)}."
            )
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_base64(cls, encoded_key: str) -> "TokenCipherService":
        """Build a cipher from the base64 key carried in configuration."""
        if not encoded_key:
            raise ValueError("Token encryption key must be provided.")
        try:
            key = base64.b64decode(encoded_key.strip(), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("Token encryption key is not valid base64.") from exc
        return cls(key=key)

    @staticmethod
    def generate_key() -> str:
        """Return a freshly generated base64 key suitable for configuration."""
        return base64.b64encode(AESGCM.generate_key(bit_length=256)).decode("ascii")

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext string and return the encoded blob."""
        nonce = os.urandom(NONCE_SIZE_BYTES)
        # AESGCM appends the tag to the ciphertext.
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_SIZE_BYTES], sealed[-TAG_SIZE_BYTES:]
        return base64.b64encode(nonce + tag + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> str:
        """Decrypt an encoded blob and return the plaintext."""
        try:
            data = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise TokenIntegrityError("Ciphertext is not valid base64.") from exc

        if len(data) < NONCE_SIZE_BYTES + TAG_SIZE_BYTES:
            raise TokenIntegrityError("Ciphertext is too short.")

        nonce = data[:NONCE_SIZE_BYTES]
        tag = data[NONCE_SIZE_BYTES : NONCE_SIZE_BYTES + TAG_SIZE_BYTES]
        ciphertext = data[NONCE_SIZE_BYTES + TAG_SIZE_BYTES :]
        try:
            plaintext = self._aesgcm.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as exc:
            raise TokenIntegrityError(
                "Failed to decrypt token; authentication tag mismatch."
            ) from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:  # pragma: no cover - authenticated data
            raise TokenIntegrityError("Decrypted token is not valid UTF-8.") from exc


__all__ = ["TokenCipherService", "TokenIntegrityError"]

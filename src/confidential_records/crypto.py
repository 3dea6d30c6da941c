"""
AES-256-GCM primitives used by the encryption gateway.

This module provides:
- SecureKey: Gateway key wrapper with best-effort zeroization
- SealedBlob: nonce || ciphertext || tag container
- AesGcmCipher: Authenticated seal/unseal of small payloads
- encode_int / decode_int: Fixed-width integer payload codec
"""

from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import CryptoError

AES_256_KEY_SIZE: int = 32  # 256 bits
NONCE_SIZE: int = 12  # 96 bits (standard for AES-GCM)
TAG_SIZE: int = 16  # 128 bits (authentication tag)
INT_PAYLOAD_SIZE: int = 8  # sealed integers are signed 64-bit big endian


class SecureKey:
    """
    Gateway key wrapper that zeroes its buffer on deletion.

    Python's garbage collector gives no timing guarantee, so the zeroing
    is best-effort.
    """

    __slots__ = ("_bytes",)

    def __init__(self, key_bytes: bytes | bytearray) -> None:
        if not isinstance(key_bytes, (bytes, bytearray)):
            raise CryptoError("Key must be bytes or bytearray")
        if len(key_bytes) != AES_256_KEY_SIZE:
            raise CryptoError(
                f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(key_bytes)}"
            )
        self._bytes = bytearray(key_bytes)

    @classmethod
    def generate(cls) -> SecureKey:
        """Generate a random 32-byte key."""
        return cls(secrets.token_bytes(AES_256_KEY_SIZE))

    @classmethod
    def from_base64(cls, encoded: str) -> SecureKey:
        """
        Decode a key from its base64 form.

        Raises:
            CryptoError: If the text is not base64 or the key has the wrong size
        """
        try:
            raw = base64.standard_b64decode(encoded.strip())
        except (binascii.Error, ValueError) as e:
            raise CryptoError(f"Base64 decode error: {e}")
        return cls(raw)

    def as_bytes(self) -> bytes:
        return bytes(self._bytes)

    def __len__(self) -> int:
        return len(self._bytes)

    def __repr__(self) -> str:
        return "SecureKey([REDACTED])"

    def __del__(self) -> None:
        if hasattr(self, "_bytes"):
            for i in range(len(self._bytes)):
                self._bytes[i] = 0


@dataclass(frozen=True)
class SealedBlob:
    """
    Sealed payload container.

    The ciphertext carries the 16-byte authentication tag appended by AESGCM.
    """

    nonce: bytes  # 12 bytes
    ciphertext: bytes  # Ciphertext + 16-byte auth tag

    def to_bytes(self) -> bytes:
        """Serialize as nonce || ciphertext || tag."""
        return self.nonce + self.ciphertext

    @classmethod
    def from_bytes(cls, blob: bytes) -> SealedBlob:
        """
        Parse nonce || ciphertext || tag.

        Raises:
            CryptoError: If blob is too small
        """
        min_size = NONCE_SIZE + TAG_SIZE
        if len(blob) < min_size:
            raise CryptoError(
                f"Sealed blob too small: expected at least {min_size} bytes, got {len(blob)}"
            )
        return cls(nonce=bytes(blob[:NONCE_SIZE]), ciphertext=bytes(blob[NONCE_SIZE:]))

    def __repr__(self) -> str:
        return f"SealedBlob({len(self.to_bytes())} bytes)"


class AesGcmCipher:
    """AES-256-GCM with Additional Authenticated Data binding."""

    @staticmethod
    def seal(key: SecureKey, plaintext: bytes, aad: Optional[bytes] = None) -> SealedBlob:
        """
        Encrypt plaintext under key with a fresh random nonce.

        Args:
            key: 32-byte gateway key
            plaintext: Data to seal
            aad: Optional data the blob is bound to (the handle id)

        Returns:
            SealedBlob with nonce and ciphertext
        """
        nonce = secrets.token_bytes(NONCE_SIZE)
        try:
            ciphertext = AESGCM(key.as_bytes()).encrypt(nonce, plaintext, aad)
        except (ValueError, OverflowError) as e:
            raise CryptoError(f"Encryption error: {e}")
        return SealedBlob(nonce=nonce, ciphertext=ciphertext)

    @staticmethod
    def unseal(key: SecureKey, sealed: SealedBlob, aad: Optional[bytes] = None) -> bytes:
        """
        Decrypt and authenticate a sealed blob.

        Raises:
            CryptoError: If the nonce is malformed or authentication fails
        """
        if len(sealed.nonce) != NONCE_SIZE:
            raise CryptoError(
                f"Invalid nonce size: expected {NONCE_SIZE}, got {len(sealed.nonce)}"
            )
        try:
            return AESGCM(key.as_bytes()).decrypt(sealed.nonce, sealed.ciphertext, aad)
        except (InvalidTag, ValueError):
            # Generic error to prevent oracle attacks
            raise CryptoError("Decryption failed")


def encode_int(value: int) -> bytes:
    return value.to_bytes(INT_PAYLOAD_SIZE, "big", signed=True)


def decode_int(payload: bytes) -> int:
    if len(payload) != INT_PAYLOAD_SIZE:
        raise CryptoError("Invalid integer payload length")
    return int.from_bytes(payload, "big", signed=True)

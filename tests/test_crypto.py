"""Tests for the AES-256-GCM primitives behind the gateway."""

from __future__ import annotations

import base64

import pytest

from confidential_records.crypto import (
    AES_256_KEY_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    AesGcmCipher,
    SealedBlob,
    SecureKey,
    decode_int,
    encode_int,
)
from confidential_records.errors import CryptoError


def test_secure_key_rejects_wrong_size():
    with pytest.raises(CryptoError):
        SecureKey(b"short")


def test_secure_key_repr_is_redacted():
    key = SecureKey.generate()
    assert len(key) == AES_256_KEY_SIZE
    assert "REDACTED" in repr(key)


def test_secure_key_from_base64():
    raw = bytes(range(32))
    key = SecureKey.from_base64(base64.standard_b64encode(raw).decode("ascii"))
    assert key.as_bytes() == raw


def test_secure_key_from_bad_base64():
    with pytest.raises(CryptoError):
        SecureKey.from_base64("not base64 !!")


def test_seal_binds_aad():
    key = SecureKey.generate()
    sealed = AesGcmCipher.seal(key, b"payload", b"handle-a")

    assert AesGcmCipher.unseal(key, sealed, b"handle-a") == b"payload"
    with pytest.raises(CryptoError, match="Decryption failed"):
        AesGcmCipher.unseal(key, sealed, b"handle-b")


def test_unseal_with_other_key_fails():
    sealed = AesGcmCipher.seal(SecureKey.generate(), b"payload")
    with pytest.raises(CryptoError):
        AesGcmCipher.unseal(SecureKey.generate(), sealed)


def test_same_plaintext_seals_differently():
    key = SecureKey.generate()
    first = AesGcmCipher.seal(key, encode_int(7))
    second = AesGcmCipher.seal(key, encode_int(7))
    assert first.to_bytes() != second.to_bytes()


def test_blob_layout():
    key = SecureKey.generate()
    sealed = AesGcmCipher.seal(key, encode_int(3))
    blob = sealed.to_bytes()

    assert len(blob) == NONCE_SIZE + 8 + TAG_SIZE
    assert SealedBlob.from_bytes(blob) == sealed


def test_blob_too_small():
    with pytest.raises(CryptoError):
        SealedBlob.from_bytes(b"\x00" * (NONCE_SIZE + TAG_SIZE - 1))


def test_int_codec():
    assert decode_int(encode_int(10)) == 10
    assert decode_int(encode_int(-1)) == -1
    with pytest.raises(CryptoError):
        decode_int(b"\x01")

"""
Exception classes for confidential record operations.

Every error raised by this package derives from RecordStoreError so callers
can catch the whole family at the boundary.
"""

from __future__ import annotations


class RecordStoreError(Exception):
    """Base exception for all confidential record operations."""

    pass


class ValidationError(RecordStoreError):
    """Input rejected before any mutation (bad field, bad id, bad rating)."""

    pass


class RangeError(ValidationError):
    """Plaintext outside the bound accepted by the encryption gateway."""

    pass


class UnauthorizedError(RecordStoreError):
    """Caller is not allowed to perform an owner-only operation."""

    pass


class NotFoundError(RecordStoreError):
    """Referenced entity does not exist."""

    pass


class RecordNotFoundError(NotFoundError):
    """Record id outside the assigned range or not marked as existing."""

    pass


class HandleNotFoundError(NotFoundError):
    """Encrypted handle unknown to the encryption gateway."""

    pass


class ComparisonUnavailableError(RecordStoreError):
    """Encrypted cross-record comparison has no defined result yet."""

    pass


class CryptoError(RecordStoreError):
    """Cryptographic operation failed (sealing, unsealing, key handling)."""

    pass


class StorageError(RecordStoreError):
    """Storage backend error (database, in-memory, etc.)."""

    pass


class ConfigError(RecordStoreError):
    """Configuration error."""

    pass

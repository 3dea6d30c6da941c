"""
Storage abstractions for sealed values and records.

This module provides:
- RecordStorage: Abstract protocol for storage backends
- InMemoryStorage: asyncio-safe in-memory implementation for tests and demos
- Supporting data structures: EncryptedHandle, SealedValue, Record
"""

from __future__ import annotations

import asyncio
import copy
from contextlib import asynccontextmanager
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, Optional, Set
from uuid import UUID

from .errors import HandleNotFoundError, RecordNotFoundError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class EncryptedHandle:
    """
    Opaque reference to a value sealed by the encryption gateway.

    Two handles are equal only when they name the same sealed value; no
    ordering is defined and the repr reveals nothing about the plaintext.
    """

    handle_id: UUID

    def __repr__(self) -> str:
        return f"EncryptedHandle({self.handle_id.hex[:8]}…)"


@dataclass
class SealedValue:
    """Gateway-side state for one handle: sealed bytes plus its grant set."""

    handle: EncryptedHandle
    blob: bytes  # nonce(12) || ciphertext || tag(16), AAD = handle id
    grants: Set[str] = field(default_factory=set)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Record:
    """A stored entity: public fields, one encrypted attribute and an owner."""

    record_id: int
    name: str
    category: str
    contact: str
    rating: EncryptedHandle
    visibility: bool
    owner: str
    exists: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


class RecordStorage(ABC):
    """
    Abstract storage interface.

    All methods are async to support both in-memory and database backends.
    Grants are append-only; nothing here deletes a handle or a record.
    """

    @abstractmethod
    async def store_sealed(self, sealed: SealedValue) -> None:
        """Store a freshly sealed value."""
        ...

    @abstractmethod
    async def get_sealed(self, handle: EncryptedHandle) -> Optional[SealedValue]:
        """Get a sealed value with its current grant set."""
        ...

    @abstractmethod
    async def add_grant(self, handle: EncryptedHandle, identity: str) -> bool:
        """
        Add identity to the handle's grant set.

        Returns:
            True if the grant was new, False if it was already present

        Raises:
            HandleNotFoundError: If the handle is unknown
        """
        ...

    @abstractmethod
    async def store_record(self, record: Record) -> None:
        """Store a new record."""
        ...

    @abstractmethod
    async def get_record(self, record_id: int) -> Optional[Record]:
        """Get a record by id."""
        ...

    @abstractmethod
    async def update_record(self, record: Record) -> None:
        """Overwrite the mutable fields of an existing record."""
        ...

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """
        Group the writes made inside the block into one unit.

        If the block raises, none of its writes remain visible. Backends
        without transactional support may leave this as a plain block.
        """
        yield

    @abstractmethod
    async def count_records(self) -> int:
        """Number of ids allocated so far."""
        ...


class InMemoryStorage(RecordStorage):
    """
    In-memory storage implementation for testing.

    Uses asyncio.Lock for safe concurrent access. Records live in a dict
    keyed by their dense integer id; returned objects are copies so callers
    cannot mutate stored state behind the store's back.
    """

    def __init__(self) -> None:
        self._sealed: Dict[UUID, SealedValue] = {}
        self._records: Dict[int, Record] = {}
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        # Snapshot and restore; callers serialize writers with their own lock
        async with self._lock:
            sealed = {k: replace(v, grants=set(v.grants)) for k, v in self._sealed.items()}
            records = dict(self._records)
        try:
            yield
        except BaseException:
            async with self._lock:
                self._sealed = sealed
                self._records = records
            raise

    async def store_sealed(self, sealed: SealedValue) -> None:
        async with self._lock:
            self._sealed[sealed.handle.handle_id] = copy.deepcopy(sealed)

    async def get_sealed(self, handle: EncryptedHandle) -> Optional[SealedValue]:
        async with self._lock:
            sealed = self._sealed.get(handle.handle_id)
            return copy.deepcopy(sealed) if sealed is not None else None

    async def add_grant(self, handle: EncryptedHandle, identity: str) -> bool:
        async with self._lock:
            sealed = self._sealed.get(handle.handle_id)
            if sealed is None:
                raise HandleNotFoundError(repr(handle))
            if identity in sealed.grants:
                return False
            sealed.grants.add(identity)
            return True

    async def store_record(self, record: Record) -> None:
        async with self._lock:
            self._records[record.record_id] = copy.deepcopy(record)

    async def get_record(self, record_id: int) -> Optional[Record]:
        async with self._lock:
            record = self._records.get(record_id)
            return copy.deepcopy(record) if record is not None else None

    async def update_record(self, record: Record) -> None:
        async with self._lock:
            if record.record_id not in self._records:
                raise RecordNotFoundError(f"Record {record.record_id}")
            self._records[record.record_id] = copy.deepcopy(record)

    async def count_records(self) -> int:
        async with self._lock:
            return len(self._records)

"""
Record store: an arena of records addressed by dense integer ids.

This module provides:
- RecordStore: create, read and owner-gated updates
- RecordFields: the plaintext fields supplied at creation
- RecordView: what a reader gets back (rating replaced by the sentinel)

Every mutation runs as one step under the shared lock and a storage
transaction: validate -> authorize -> seal/grant -> persist -> notify.
A rejected call leaves no partial grants and no partial writes, and two
mutations never interleave, notifications included. Subscribers run while
the lock is held, so they may read the store but must not mutate it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from .access import authorize, require_owner
from .errors import RecordNotFoundError, ValidationError
from .events import NotificationBus, PreferenceUpdated, RatingUpdated, RecordCreated
from .gateway import RATING_BOUND, EncryptionGateway
from .logger import get_logger
from .storage import EncryptedHandle, Record, RecordStorage, utcnow

log = get_logger(__name__)

RATING_SENTINEL: int = 0


@dataclass(frozen=True)
class RecordFields:
    """Plaintext fields of a record. All three must be non-empty."""

    name: str
    category: str
    contact: str

    def validated(self) -> RecordFields:
        """
        Return a copy with surrounding whitespace stripped.

        Raises:
            ValidationError: If any field is missing, not a string, or blank
        """
        cleaned = {}
        for attr in ("name", "category", "contact"):
            value = getattr(self, attr)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"{attr} must be a non-empty string")
            cleaned[attr] = value.strip()
        return RecordFields(**cleaned)


@dataclass(frozen=True)
class RecordView:
    """Public projection of a record. The rating is always the sentinel."""

    record_id: int
    name: str
    category: str
    contact: str
    owner: str
    rating: int = RATING_SENTINEL


def check_record_id(record_id: int) -> None:
    if isinstance(record_id, bool) or not isinstance(record_id, int):
        raise ValidationError(f"record id must be an integer, got {record_id!r}")


def check_rating(rating: int) -> None:
    low, high = RATING_BOUND
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError(f"rating must be an integer in [{low}, {high}]")
    if not low <= rating <= high:
        raise ValidationError(f"rating {rating} outside [{low}, {high}]")


def check_flag(value: bool) -> None:
    if not isinstance(value, bool):
        raise ValidationError(f"visibility flag must be a bool, got {value!r}")


def check_identity(identity: str) -> None:
    if not isinstance(identity, str) or not identity:
        raise ValidationError("identity must be a non-empty string")


class RecordStore:
    """
    Keyed collection of records with controlled mutation entry points.

    Ids are allocated as count + 1 and never reused. The store holds a
    grant on every handle it seals, next to the owner's grant.
    """

    def __init__(
        self,
        storage: RecordStorage,
        gateway: EncryptionGateway,
        bus: NotificationBus,
        identity: str,
        lock: Optional[asyncio.Lock] = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            storage: Backend for record rows
            gateway: Encryption gateway sealing the rating
            bus: Where notifications are published
            identity: Identity the store is granted under on every handle
            lock: Global mutation lock, shared with the decryption coordinator
        """
        self._storage = storage
        self._gateway = gateway
        self._bus = bus
        self._identity = identity
        self._lock = lock if lock is not None else asyncio.Lock()

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create(
        self, fields: RecordFields, rating: int, visibility: bool, owner: str
    ) -> int:
        """
        Create a record owned by owner.

        Args:
            fields: Plaintext name, category and contact
            rating: Rating to seal, in [1, 10]
            visibility: Owner-only flag
            owner: Identity of the submitting caller

        Returns:
            The new record id

        Raises:
            ValidationError: If any input is invalid; no id is allocated
        """
        fields = fields.validated()
        check_rating(rating)
        check_flag(visibility)
        check_identity(owner)

        async with self._lock:
            async with self._storage.transaction():
                record_id = await self._storage.count_records() + 1
                handle = await self._seal_for(owner, rating)
                await self._storage.store_record(
                    Record(
                        record_id=record_id,
                        name=fields.name,
                        category=fields.category,
                        contact=fields.contact,
                        rating=handle,
                        visibility=visibility,
                        owner=owner,
                    )
                )

            log.info("record %d created by %s", record_id, owner)
            await self._bus.publish(
                RecordCreated(record_id=record_id, name=fields.name, owner=owner)
            )
        return record_id

    async def update_rating(self, record_id: int, rating: int, caller: str) -> None:
        """
        Replace the sealed rating with a freshly sealed value.

        The old handle and its grants are abandoned, never reused.

        Raises:
            RecordNotFoundError: If the record does not exist
            UnauthorizedError: If caller is not the owner
            ValidationError: If rating is out of bound
        """
        check_record_id(record_id)
        async with self._lock:
            async with self._storage.transaction():
                record = await self.load(record_id)
                require_owner(caller, record, "update rating of")
                check_rating(rating)
                record.rating = await self._seal_for(record.owner, rating)
                record.updated_at = utcnow()
                await self._storage.update_record(record)

            log.info("record %d rating replaced", record_id)
            await self._bus.publish(RatingUpdated(record_id=record_id, caller=caller))

    async def update_visibility(self, record_id: int, value: bool, caller: str) -> None:
        """Overwrite the owner-only flag."""
        check_record_id(record_id)
        async with self._lock:
            async with self._storage.transaction():
                record = await self.load(record_id)
                require_owner(caller, record, "update visibility of")
                check_flag(value)
                record.visibility = value
                record.updated_at = utcnow()
                await self._storage.update_record(record)

            log.info("record %d visibility updated", record_id)
            await self._bus.publish(PreferenceUpdated(record_id=record_id, caller=caller))

    async def _seal_for(self, owner: str, rating: int) -> EncryptedHandle:
        handle = await self._gateway.seal(rating, RATING_BOUND)
        await self._gateway.grant(handle, self._identity)
        await self._gateway.grant(handle, owner)
        return handle

    # =========================================================================
    # Reads
    # =========================================================================

    async def load(self, record_id: int) -> Record:
        """
        Fetch the full record, handle included. For internal collaborators.

        Raises:
            ValidationError: If record_id is not an integer
            RecordNotFoundError: If the id is unassigned or the record is gone
        """
        check_record_id(record_id)
        count = await self._storage.count_records()
        if not 1 <= record_id <= count:
            raise RecordNotFoundError(f"Record {record_id}")
        record = await self._storage.get_record(record_id)
        if record is None or not record.exists:
            raise RecordNotFoundError(f"Record {record_id}")
        return record

    async def read(self, record_id: int) -> RecordView:
        record = await self.load(record_id)
        return RecordView(
            record_id=record.record_id,
            name=record.name,
            category=record.category,
            contact=record.contact,
            owner=record.owner,
        )

    async def read_visibility(self, record_id: int, caller: str) -> bool:
        """Real flag for the owner, False for everyone else."""
        record = await self.load(record_id)
        if not authorize(caller, record):
            return False
        return record.visibility

    async def count(self) -> int:
        return await self._storage.count_records()

    async def exists(self, record_id: int) -> bool:
        try:
            await self.load(record_id)
        except RecordNotFoundError:
            return False
        return True

"""
PostgreSQL storage backend for sealed values and records.

This module provides:
- PostgresStorage: asyncpg-backed implementation of RecordStorage
- SCHEMA_SQL: idempotent DDL for the three backing tables

Tables:
- sealed_values: one row per handle (blob = nonce || ciphertext || tag)
- handle_grants: append-only (handle_id, grantee) relation
- records: dense integer ids, never deleted
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional
from uuid import UUID

import asyncpg

from .errors import HandleNotFoundError, RecordNotFoundError, StorageError
from .storage import EncryptedHandle, Record, RecordStorage, SealedValue

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS sealed_values (
    handle_id   UUID PRIMARY KEY,
    blob        BYTEA NOT NULL,
    created_at  TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS handle_grants (
    handle_id   UUID NOT NULL REFERENCES sealed_values (handle_id),
    grantee     TEXT NOT NULL,
    granted_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (handle_id, grantee)
);

CREATE TABLE IF NOT EXISTS records (
    record_id   BIGINT PRIMARY KEY CHECK (record_id >= 1),
    name        TEXT NOT NULL,
    category    TEXT NOT NULL,
    contact     TEXT NOT NULL,
    handle_id   UUID NOT NULL REFERENCES sealed_values (handle_id),
    visibility  BOOLEAN NOT NULL,
    owner       TEXT NOT NULL,
    record_exists BOOLEAN NOT NULL DEFAULT TRUE,
    created_at  TIMESTAMPTZ NOT NULL,
    updated_at  TIMESTAMPTZ NOT NULL
);
"""


class PostgresStorage(RecordStorage):
    """
    PostgreSQL storage backend.

    Driver errors are wrapped in StorageError; not-found conditions keep
    their own error types so callers can tell them apart.

    Inside transaction(), every call made by the same task runs on the
    transaction's connection, so a record and the sealed value and grants
    behind its rating commit or roll back together.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        """
        Initialize PostgreSQL storage.

        Args:
            pool: asyncpg connection pool
        """
        self._pool = pool
        self._active: Dict[asyncio.Task, asyncpg.Connection] = {}

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool."""
        return self._pool

    async def init_schema(self) -> None:
        """Create the backing tables if they do not exist."""
        try:
            await self._pool.execute(SCHEMA_SQL)
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to initialize schema: {e}")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        task = asyncio.current_task()
        if task is None or task in self._active:
            # Nested blocks join the outer transaction
            yield
            return
        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    self._active[task] = conn
                    try:
                        yield
                    finally:
                        del self._active[task]
        except asyncpg.PostgresError as e:
            raise StorageError(f"Transaction failed: {e}")

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        conn = self._active.get(asyncio.current_task())
        if conn is not None:
            yield conn
            return
        async with self._pool.acquire() as conn:
            yield conn

    async def store_sealed(self, sealed: SealedValue) -> None:
        try:
            async with self._connection() as conn:
                async with conn.transaction():
                    await conn.execute(
                        """
                        INSERT INTO sealed_values (handle_id, blob, created_at)
                        VALUES ($1, $2, $3)
                        """,
                        sealed.handle.handle_id,
                        sealed.blob,
                        sealed.created_at,
                    )
                    for grantee in sorted(sealed.grants):
                        await conn.execute(
                            """
                            INSERT INTO handle_grants (handle_id, grantee)
                            VALUES ($1, $2)
                            ON CONFLICT DO NOTHING
                            """,
                            sealed.handle.handle_id,
                            grantee,
                        )
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to store sealed value: {e}")

    async def get_sealed(self, handle: EncryptedHandle) -> Optional[SealedValue]:
        try:
            async with self._connection() as conn:
                row = await conn.fetchrow(
                    "SELECT handle_id, blob, created_at FROM sealed_values WHERE handle_id = $1",
                    handle.handle_id,
                )
                if row is None:
                    return None
                grants = await conn.fetch(
                    "SELECT grantee FROM handle_grants WHERE handle_id = $1",
                    handle.handle_id,
                )
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to get sealed value: {e}")

        return SealedValue(
            handle=_to_handle(row["handle_id"]),
            blob=bytes(row["blob"]),
            grants={g["grantee"] for g in grants},
            created_at=row["created_at"],
        )

    async def add_grant(self, handle: EncryptedHandle, identity: str) -> bool:
        try:
            async with self._connection() as conn:
                async with conn.transaction():
                    known = await conn.fetchval(
                        "SELECT 1 FROM sealed_values WHERE handle_id = $1",
                        handle.handle_id,
                    )
                    if known is None:
                        raise HandleNotFoundError(repr(handle))
                    inserted = await conn.fetchval(
                        """
                        INSERT INTO handle_grants (handle_id, grantee)
                        VALUES ($1, $2)
                        ON CONFLICT DO NOTHING
                        RETURNING 1
                        """,
                        handle.handle_id,
                        identity,
                    )
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to add grant: {e}")
        return inserted is not None

    async def store_record(self, record: Record) -> None:
        query = """
            INSERT INTO records (record_id, name, category, contact, handle_id,
                                 visibility, owner, record_exists, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
        """
        try:
            async with self._connection() as conn:
                await conn.execute(
                    query,
                    record.record_id,
                    record.name,
                    record.category,
                    record.contact,
                    record.rating.handle_id,
                    record.visibility,
                    record.owner,
                    record.exists,
                    record.created_at,
                    record.updated_at,
                )
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to store record: {e}")

    async def get_record(self, record_id: int) -> Optional[Record]:
        query = """
            SELECT record_id, name, category, contact, handle_id, visibility,
                   owner, record_exists, created_at, updated_at
            FROM records WHERE record_id = $1
        """
        try:
            async with self._connection() as conn:
                row = await conn.fetchrow(query, record_id)
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to get record: {e}")
        if row is None:
            return None
        return self._row_to_record(row)

    async def update_record(self, record: Record) -> None:
        query = """
            UPDATE records
            SET handle_id = $2, visibility = $3, updated_at = $4
            WHERE record_id = $1
        """
        try:
            async with self._connection() as conn:
                status = await conn.execute(
                    query,
                    record.record_id,
                    record.rating.handle_id,
                    record.visibility,
                    record.updated_at,
                )
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to update record: {e}")
        if status == "UPDATE 0":
            raise RecordNotFoundError(f"Record {record.record_id}")

    async def count_records(self) -> int:
        try:
            async with self._connection() as conn:
                count = await conn.fetchval("SELECT count(*) FROM records")
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to count records: {e}")
        return int(count)

    @staticmethod
    def _row_to_record(row: asyncpg.Record) -> Record:
        """Convert database row to Record."""
        return Record(
            record_id=row["record_id"],
            name=row["name"],
            category=row["category"],
            contact=row["contact"],
            rating=_to_handle(row["handle_id"]),
            visibility=row["visibility"],
            owner=row["owner"],
            exists=row["record_exists"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


def _to_handle(value: UUID) -> EncryptedHandle:
    # asyncpg returns its own UUID subclass; normalize to uuid.UUID
    return EncryptedHandle(UUID(str(value)))

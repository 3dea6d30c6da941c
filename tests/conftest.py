"""
Pytest configuration and fixtures for confidential record tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncGenerator

import asyncpg
import pytest
from dotenv import load_dotenv

from confidential_records import (
    DecryptionCoordinator,
    EncryptionGateway,
    EventRecorder,
    InMemoryStorage,
    NotificationBus,
    PostgresStorage,
    RecordService,
    RecordStore,
    Settings,
)
from confidential_records.crypto import SecureKey

STORE_IDENTITY = "record-store"


@pytest.fixture
def memory_storage() -> InMemoryStorage:
    """Create an in-memory storage instance for testing."""
    return InMemoryStorage()


@pytest.fixture
def bus() -> NotificationBus:
    return NotificationBus()


@pytest.fixture
def recorder(bus: NotificationBus) -> EventRecorder:
    """Record every notification published on the bus."""
    recorder = EventRecorder()
    bus.subscribe(recorder)
    return recorder


@pytest.fixture
async def gateway(memory_storage: InMemoryStorage) -> AsyncGenerator[EncryptionGateway, None]:
    gateway = EncryptionGateway(memory_storage, key=SecureKey.generate())
    yield gateway
    await gateway.close()


@pytest.fixture
def store(
    memory_storage: InMemoryStorage, gateway: EncryptionGateway, bus: NotificationBus
) -> RecordStore:
    return RecordStore(memory_storage, gateway, bus, identity=STORE_IDENTITY)


@pytest.fixture
def coordinator(
    store: RecordStore, gateway: EncryptionGateway, bus: NotificationBus
) -> DecryptionCoordinator:
    return DecryptionCoordinator(store, gateway, bus)


@pytest.fixture
async def service() -> AsyncGenerator[RecordService, None]:
    """In-memory service, independent of any DATABASE_URL in the environment."""
    service = await RecordService.new(
        Settings(gateway_key=SecureKey.generate()), storage=InMemoryStorage()
    )
    yield service
    await service.close()


@pytest.fixture
async def pg_pool() -> AsyncGenerator[asyncpg.Pool, None]:
    """Create a PostgreSQL connection pool for testing."""
    env_path = Path(__file__).parent.parent / ".env"
    load_dotenv(env_path)

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set, skipping PostgreSQL tests")

    pool = await asyncpg.create_pool(database_url)
    if pool is None:
        pytest.skip("Failed to create PostgreSQL connection pool")

    await PostgresStorage(pool).init_schema()
    await pool.execute("TRUNCATE TABLE records, handle_grants, sealed_values")

    yield pool

    await pool.close()


@pytest.fixture
async def postgres_storage(pg_pool: asyncpg.Pool) -> PostgresStorage:
    """Create a PostgreSQL storage instance for testing."""
    return PostgresStorage(pg_pool)

"""
High-level record service.

Wires storage, the encryption gateway, the record store and the decryption
coordinator behind the boundary operations presented to callers. The
caller identity is always passed explicitly; establishing it is the job of
whatever sits in front of this service.
"""

from __future__ import annotations

import asyncio
from typing import Callable, NoReturn, Optional

import asyncpg

from .config import Settings
from .coordinator import DecryptionCoordinator, DecryptionRequest
from .errors import StorageError
from .events import Handler, NotificationBus
from .gateway import EncryptionGateway
from .logger import get_logger
from .postgres_storage import PostgresStorage
from .records import RecordFields, RecordStore, RecordView
from .storage import InMemoryStorage, RecordStorage

log = get_logger(__name__)


class RecordService:
    """
    Confidential record service.

    Provides create/read/update of records whose rating is sealed, plus
    owner-only asynchronous decryption of that rating.
    """

    def __init__(
        self,
        storage: RecordStorage,
        gateway: EncryptionGateway,
        store: RecordStore,
        coordinator: DecryptionCoordinator,
        bus: NotificationBus,
        pool: Optional[asyncpg.Pool] = None,
    ) -> None:
        self._storage = storage
        self._gateway = gateway
        self._store = store
        self._coordinator = coordinator
        self._bus = bus
        self._pool = pool

    @classmethod
    async def new(
        cls,
        settings: Optional[Settings] = None,
        storage: Optional[RecordStorage] = None,
    ) -> RecordService:
        """
        Build a service (async factory method).

        Storage selection: an explicit storage wins; otherwise PostgreSQL
        when settings.database_url is set; otherwise in-memory.

        Args:
            settings: Runtime settings; read from the environment when omitted
            storage: Optional pre-built storage backend

        Returns:
            RecordService instance
        """
        if settings is None:
            settings = Settings.from_env()

        pool: Optional[asyncpg.Pool] = None
        if storage is None:
            if settings.database_url:
                pool = await asyncpg.create_pool(settings.database_url)
                if pool is None:
                    raise StorageError("Failed to create PostgreSQL connection pool")
                storage = PostgresStorage(pool)
                await storage.init_schema()
                log.info("using PostgreSQL storage")
            else:
                storage = InMemoryStorage()
                log.info("using in-memory storage")

        bus = NotificationBus()
        gateway = EncryptionGateway(
            storage, key=settings.gateway_key, unseal_delay=settings.unseal_delay
        )
        store = RecordStore(
            storage, gateway, bus, identity=settings.store_identity, lock=asyncio.Lock()
        )
        coordinator = DecryptionCoordinator(store, gateway, bus)
        return cls(storage, gateway, store, coordinator, bus, pool=pool)

    @property
    def gateway(self) -> EncryptionGateway:
        return self._gateway

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def coordinator(self) -> DecryptionCoordinator:
        return self._coordinator

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Register a notification handler; returns an unsubscribe callable."""
        return self._bus.subscribe(handler)

    # =========================================================================
    # Boundary operations
    # =========================================================================

    async def create_record(
        self,
        caller: str,
        name: str,
        category: str,
        contact: str,
        rating: int,
        visibility: bool = False,
    ) -> int:
        return await self._store.create(
            RecordFields(name=name, category=category, contact=contact),
            rating,
            visibility,
            owner=caller,
        )

    async def get_record(self, record_id: int) -> RecordView:
        return await self._store.read(record_id)

    async def update_rating(self, caller: str, record_id: int, rating: int) -> None:
        await self._store.update_rating(record_id, rating, caller)

    async def update_visibility(self, caller: str, record_id: int, flag: bool) -> None:
        await self._store.update_visibility(record_id, flag, caller)

    async def get_visibility(self, caller: str, record_id: int) -> bool:
        return await self._store.read_visibility(record_id, caller)

    async def request_decryption(self, caller: str, record_id: int) -> DecryptionRequest:
        return await self._coordinator.request_decryption(record_id, caller)

    async def compare(self, caller: str, record_a: int, record_b: int) -> NoReturn:
        await self._coordinator.compare(record_a, record_b, caller)

    async def count(self) -> int:
        return await self._store.count()

    async def exists(self, record_id: int) -> bool:
        return await self._store.exists(record_id)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def drain(self) -> None:
        """Wait until every queued decryption has been dispatched."""
        await self._gateway.join()

    async def close(self) -> None:
        """
        Stop the gateway dispatcher and release the pool this service opened.

        Decryption requests still pending are abandoned.
        """
        await self._gateway.close()
        self._coordinator.abandon_pending()
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

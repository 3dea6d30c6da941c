"""
Confidential Records Library

A record store in which each record carries plaintext fields next to one
sealed attribute (the rating) that only the record's owner can decrypt.

Overview
--------
- **Encryption Gateway** seals a bounded integer into an opaque handle and
  keeps an append-only set of identities allowed to unseal it
- **Record Store** keeps records in a dense, never-reused id space
- **Access Control** gates every mutation and disclosure on ownership
- **Decryption Coordinator** turns an owner's request into an asynchronous
  unseal whose result is published as a ``Decrypted`` notification

Quick Start
-----------
```python
import asyncio
from confidential_records import Decrypted, EventRecorder, RecordService, Settings

async def main():
    service = await RecordService.new(Settings())
    recorder = EventRecorder()
    service.subscribe(recorder)

    record_id = await service.create_record(
        "0xA11CE", name="Acme", category="Tools", contact="a@x", rating=7
    )
    await service.request_decryption("0xA11CE", record_id)
    await service.drain()
    print(recorder.of_kind(Decrypted)[0].plaintext)  # 7

    await service.close()

asyncio.run(main())
```

Modules
-------
- `gateway`: sealing, grants and asynchronous unseal
- `records`: the record store
- `access`: owner predicates
- `coordinator`: decryption request state machine
- `service`: high-level facade
- `storage` / `postgres_storage`: in-memory and PostgreSQL backends
- `events`: notification types and bus
- `config`, `logger`, `errors`, `crypto`: supporting pieces
"""

__version__ = "0.1.0"

# ============================================================================
# Error Exports
# ============================================================================

from .errors import (
    ComparisonUnavailableError,
    ConfigError,
    CryptoError,
    HandleNotFoundError,
    NotFoundError,
    RangeError,
    RecordNotFoundError,
    RecordStoreError,
    StorageError,
    UnauthorizedError,
    ValidationError,
)

# ============================================================================
# Storage Exports
# ============================================================================

from .storage import (
    EncryptedHandle,
    InMemoryStorage,
    Record,
    RecordStorage,
    SealedValue,
)
from .postgres_storage import PostgresStorage

# ============================================================================
# Core Exports
# ============================================================================

from .config import Settings
from .events import (
    Decrypted,
    EventRecorder,
    Notification,
    NotificationBus,
    PreferenceUpdated,
    RatingUpdated,
    RecordCreated,
)
from .gateway import RATING_BOUND, EncryptionGateway
from .records import RATING_SENTINEL, RecordFields, RecordStore, RecordView
from .coordinator import DecryptionCoordinator, DecryptionRequest, RequestState
from .service import RecordService

# ============================================================================
# Public API
# ============================================================================

__all__ = [
    # Version
    "__version__",
    # Errors
    "RecordStoreError",
    "ValidationError",
    "RangeError",
    "UnauthorizedError",
    "NotFoundError",
    "RecordNotFoundError",
    "HandleNotFoundError",
    "ComparisonUnavailableError",
    "CryptoError",
    "StorageError",
    "ConfigError",
    # Storage
    "RecordStorage",
    "InMemoryStorage",
    "PostgresStorage",
    "EncryptedHandle",
    "SealedValue",
    "Record",
    # Core
    "Settings",
    "EncryptionGateway",
    "RATING_BOUND",
    "RecordStore",
    "RecordFields",
    "RecordView",
    "RATING_SENTINEL",
    "DecryptionCoordinator",
    "DecryptionRequest",
    "RequestState",
    "RecordService",
    # Notifications
    "Notification",
    "NotificationBus",
    "EventRecorder",
    "RecordCreated",
    "RatingUpdated",
    "PreferenceUpdated",
    "Decrypted",
]

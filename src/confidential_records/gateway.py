"""
Encryption gateway: the only component that ever sees sealed plaintext.

This module provides:
- EncryptionGateway: seal, grant, and asynchronous unseal of bounded integers
- UnsealJob: queued unseal work item
- RATING_BOUND: inclusive bound for sealed ratings

Sealing flow:
1. Check the plaintext is an integer within the declared bound
2. Allocate a fresh handle (uuid4)
3. Encrypt the 8-byte payload with AES-256-GCM (AAD = handle id)
4. Persist the blob with an empty grant set

Unseal flow:
1. request_unseal checks the requester holds a grant and enqueues a job
2. A single dispatcher task drains the queue in FIFO order
3. Each job decrypts and invokes its completion handler exactly once
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Union
from uuid import UUID, uuid4

from .crypto import AesGcmCipher, SealedBlob, SecureKey, decode_int, encode_int
from .errors import HandleNotFoundError, RangeError, UnauthorizedError
from .logger import get_logger
from .storage import EncryptedHandle, RecordStorage, SealedValue

log = get_logger(__name__)

RATING_BOUND: Tuple[int, int] = (1, 10)

UnsealedCallback = Callable[[UUID, int], Union[None, Awaitable[None]]]


@dataclass
class UnsealJob:
    """Queued unseal work item."""

    request_id: UUID
    handle: EncryptedHandle
    requester: str
    on_unsealed: UnsealedCallback


class EncryptionGateway:
    """
    Wraps the sealing primitive and the per-handle capability sets.

    Grants are additive only. Unseal requests are answered on the
    gateway's own schedule; there is no failure callback, a job that
    cannot be completed is logged and dropped.
    """

    def __init__(
        self,
        storage: RecordStorage,
        key: Optional[SecureKey] = None,
        unseal_delay: float = 0.0,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            storage: Backend holding sealed values and grant sets
            key: 32-byte gateway key; an ephemeral key is generated when omitted
            unseal_delay: Seconds to wait before each unseal completes
        """
        if key is None:
            log.warning("no gateway key configured, sealed values will not survive restart")
            key = SecureKey.generate()
        self._storage = storage
        self._key = key
        self._unseal_delay = unseal_delay
        self._queue: Optional[asyncio.Queue[UnsealJob]] = None
        self._worker: Optional[asyncio.Task[None]] = None

    # =========================================================================
    # Sealing and grants
    # =========================================================================

    async def seal(
        self, plaintext: int, bound: Tuple[int, int] = RATING_BOUND
    ) -> EncryptedHandle:
        """
        Seal a bounded integer into a fresh opaque handle.

        Args:
            plaintext: Value to seal
            bound: Inclusive (low, high) range the value must lie in

        Returns:
            New handle with no grants attached

        Raises:
            RangeError: If plaintext is not an integer within bound
        """
        low, high = bound
        if isinstance(plaintext, bool) or not isinstance(plaintext, int):
            raise RangeError(f"plaintext must be an integer in [{low}, {high}]")
        if not low <= plaintext <= high:
            raise RangeError(f"plaintext outside [{low}, {high}]")

        handle = EncryptedHandle(uuid4())
        blob = AesGcmCipher.seal(self._key, encode_int(plaintext), handle.handle_id.bytes)
        await self._storage.store_sealed(SealedValue(handle=handle, blob=blob.to_bytes()))
        log.info("sealed %r", handle)
        return handle

    async def grant(self, handle: EncryptedHandle, identity: str) -> None:
        """
        Allow identity to request unsealing of handle. Idempotent.

        Raises:
            HandleNotFoundError: If the handle was never sealed here
        """
        added = await self._storage.add_grant(handle, identity)
        if added:
            log.info("granted %s on %r", identity, handle)

    async def has_capability(self, handle: EncryptedHandle, identity: str) -> bool:
        sealed = await self._storage.get_sealed(handle)
        if sealed is None:
            raise HandleNotFoundError(repr(handle))
        return identity in sealed.grants

    # =========================================================================
    # Asynchronous unseal
    # =========================================================================

    async def request_unseal(
        self,
        handle: EncryptedHandle,
        requester: str,
        on_unsealed: UnsealedCallback,
    ) -> UUID:
        """
        Schedule an unseal and return immediately.

        Args:
            handle: Handle to unseal
            requester: Identity asking; must hold a grant on handle
            on_unsealed: Called once with (request_id, plaintext) on completion

        Returns:
            Request identifier

        Raises:
            HandleNotFoundError: If the handle is unknown
            UnauthorizedError: If requester holds no grant on handle
        """
        if not await self.has_capability(handle, requester):
            log.warning("unseal of %r refused for %s", handle, requester)
            raise UnauthorizedError(f"{requester} holds no grant on {handle!r}")

        queue = self.start()
        request_id = uuid4()
        queue.put_nowait(UnsealJob(request_id, handle, requester, on_unsealed))
        log.info("unseal %s queued for %s", request_id, requester)
        return request_id

    def start(self) -> asyncio.Queue[UnsealJob]:
        """
        Start the dispatcher task if it is not running.

        Returns:
            The queue the dispatcher reads from
        """
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._dispatch(self._queue))
        return self._queue

    async def join(self) -> None:
        """Wait until every queued unseal has been dispatched."""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        """Stop the dispatcher. Jobs still queued are abandoned."""
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        self._queue = None

    async def _dispatch(self, queue: asyncio.Queue[UnsealJob]) -> None:
        while True:
            job = await queue.get()
            try:
                if self._unseal_delay:
                    await asyncio.sleep(self._unseal_delay)
                plaintext = await self._unseal(job.handle)
                result = job.on_unsealed(job.request_id, plaintext)
                if asyncio.iscoroutine(result):
                    await result
                log.info("unseal %s dispatched", job.request_id)
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("unseal %s dropped", job.request_id)
            finally:
                queue.task_done()

    async def _unseal(self, handle: EncryptedHandle) -> int:
        sealed = await self._storage.get_sealed(handle)
        if sealed is None:
            raise HandleNotFoundError(repr(handle))
        blob = SealedBlob.from_bytes(sealed.blob)
        return decode_int(AesGcmCipher.unseal(self._key, blob, handle.handle_id.bytes))

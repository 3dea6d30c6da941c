"""
Decryption coordinator: owner-initiated, asynchronous unseal of a record's rating.

State machine per request:

    Idle --(owner asks)--> Requested --(gateway callback)--> Resolved

An unauthorized caller is rejected before leaving Idle, so no request
entity is ever created for it. Resolved requests are discarded once the
Decrypted notification has been published.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, NoReturn, Optional
from uuid import UUID

from .access import require_any_owner, require_owner
from .errors import ComparisonUnavailableError
from .events import Decrypted, NotificationBus
from .gateway import EncryptionGateway
from .logger import get_logger
from .records import RecordStore
from .storage import EncryptedHandle

log = get_logger(__name__)


class RequestState(Enum):
    IDLE = "Idle"
    REQUESTED = "Requested"
    RESOLVED = "Resolved"

    def __str__(self) -> str:
        return self.value


@dataclass(eq=False)
class DecryptionRequest:
    """Transient unseal request. Not persisted beyond its callback."""

    request_id: UUID
    record_id: int
    handle: EncryptedHandle
    requester: str
    state: RequestState = RequestState.REQUESTED
    _result: asyncio.Future = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._result = asyncio.get_running_loop().create_future()

    async def wait(self, timeout: Optional[float] = None) -> int:
        """
        Wait for the plaintext.

        The Decrypted notification stays the contract for observers; this is
        a shortcut for in-process callers. There is no failure signal, so a
        timeout is the only way out of a request whose unseal never completes.
        Raises asyncio.CancelledError once the request has been abandoned.
        """
        return await asyncio.wait_for(asyncio.shield(self._result), timeout)

    def _resolve(self, plaintext: int) -> None:
        self.state = RequestState.RESOLVED
        if not self._result.done():
            self._result.set_result(plaintext)

    def _abandon(self) -> None:
        self._result.cancel()


class DecryptionCoordinator:
    """Runs the request/callback protocol between owners and the gateway."""

    def __init__(
        self,
        store: RecordStore,
        gateway: EncryptionGateway,
        bus: NotificationBus,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._bus = bus
        self._pending: Dict[UUID, DecryptionRequest] = {}

    def pending(self) -> List[DecryptionRequest]:
        """
        Requests still waiting on the gateway.

        The gateway has no failure callback: a request whose unseal job was
        dropped stays listed here until abandon_pending() is called.
        """
        return list(self._pending.values())

    def abandon_pending(self) -> List[DecryptionRequest]:
        """
        Forget every pending request, cancelling anyone blocked in wait().

        Returns:
            The abandoned requests, still in state Requested
        """
        abandoned = list(self._pending.values())
        self._pending.clear()
        for request in abandoned:
            request._abandon()
        if abandoned:
            log.warning("%d pending decryption(s) abandoned", len(abandoned))
        return abandoned

    async def request_decryption(self, record_id: int, caller: str) -> DecryptionRequest:
        """
        Ask the gateway to unseal a record's rating for its owner.

        Returns as soon as the gateway has accepted the request; the
        plaintext arrives later as a Decrypted notification.

        Args:
            record_id: Record whose rating to decrypt
            caller: Requesting identity; must be the owner

        Returns:
            The request in state Requested

        Raises:
            RecordNotFoundError: If the record does not exist
            UnauthorizedError: If caller is not the owner
        """
        async with self._store.lock:
            record = await self._store.load(record_id)
            require_owner(caller, record, "decrypt")
            request_id = await self._gateway.request_unseal(
                record.rating, caller, self._on_unsealed
            )
            request = DecryptionRequest(
                request_id=request_id,
                record_id=record.record_id,
                handle=record.rating,
                requester=caller,
            )
            self._pending[request_id] = request

        log.info("decryption %s requested on record %d", request_id, record_id)
        return request

    async def _on_unsealed(self, request_id: UUID, plaintext: int) -> None:
        # Serialized with mutations so Decrypted never lands mid-notification
        async with self._store.lock:
            request = self._pending.pop(request_id, None)
            if request is None:
                log.warning("unseal %s completed with no pending request", request_id)
                return
            request._resolve(plaintext)
            log.info("decryption %s resolved", request_id)
            await self._bus.publish(
                Decrypted(owner=request.requester, plaintext=plaintext, record_id=request.record_id)
            )

    async def compare(self, record_a: int, record_b: int, caller: str) -> NoReturn:
        """
        Compare the sealed ratings of two records.

        Both records must exist and caller must own at least one of them.
        No encrypted comparison primitive is wired in yet, so after those
        checks this always raises instead of returning a made-up answer.

        Raises:
            RecordNotFoundError: If either record does not exist
            UnauthorizedError: If caller owns neither record
            ComparisonUnavailableError: Always, once the checks pass
        """
        first = await self._store.load(record_a)
        second = await self._store.load(record_b)
        require_any_owner(caller, first, second, action="compare")
        # TODO: route through a gateway comparison op once the encrypted
        # comparison contract (result type, who may decrypt it) is settled.
        raise ComparisonUnavailableError(
            f"comparison of records {record_a} and {record_b} is not available"
        )

"""
Notifications emitted by the record store and the decryption coordinator.

Subscribers register a plain function or a coroutine function with the
NotificationBus; events are delivered in publish order.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Union

from .logger import get_logger
from .storage import utcnow

log = get_logger(__name__)


@dataclass(frozen=True)
class Notification:
    """Base type for every published event."""

    emitted_at: datetime = field(default_factory=utcnow, compare=False, kw_only=True)

    @property
    def kind(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class RecordCreated(Notification):
    record_id: int
    name: str
    owner: str


@dataclass(frozen=True)
class RatingUpdated(Notification):
    record_id: int
    caller: str


@dataclass(frozen=True)
class PreferenceUpdated(Notification):
    record_id: int
    caller: str


@dataclass(frozen=True)
class Decrypted(Notification):
    """Result of an owner's decryption request. Carries the plaintext."""

    owner: str
    plaintext: int
    record_id: int = field(default=0, compare=False)

    def __repr__(self) -> str:
        # Keep the plaintext out of logs and tracebacks.
        return f"Decrypted(owner={self.owner!r}, record_id={self.record_id}, plaintext=<redacted>)"


Handler = Callable[[Notification], Union[None, Awaitable[None]]]


class NotificationBus:
    """
    In-process publish/subscribe channel.

    A failing subscriber is logged and skipped so that one broken observer
    cannot stop delivery to the others or roll back the operation that
    already committed.
    """

    def __init__(self) -> None:
        self._handlers: List[Handler] = []

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """
        Register a handler.

        Returns:
            A callable that removes the handler again
        """
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def publish(self, event: Notification) -> None:
        log.debug("publish %s", event.kind)
        for handler in list(self._handlers):
            try:
                result: Any = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                log.exception("notification handler failed for %s", event.kind)


class EventRecorder:
    """Subscriber that keeps every event it sees, for tests and the demo."""

    def __init__(self) -> None:
        self.events: List[Notification] = []

    def __call__(self, event: Notification) -> None:
        self.events.append(event)

    def of_kind(self, kind: type) -> List[Any]:
        return [e for e in self.events if isinstance(e, kind)]

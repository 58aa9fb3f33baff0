"""Change channel: push notifications of remote record mutations.

A subscription is a scoped resource. Entering it acknowledges the
subscription, iterating it yields ``ChangeEvent`` objects, iteration ends when
the channel closes and raises ``ChannelError`` when the channel fails. Leaving
the ``async with`` block always releases it.

    async with channel.subscribe(EntityKind.STAY, {"property_id": "p1"}) as sub:
        async for event in sub:
            ...
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Protocol

from models.base import EntityKind
from utils.errors import ChannelError

logger = logging.getLogger(__name__)


class ChangeOperation(Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class ChangeEvent:
    """One remote mutation of a stay or room record."""

    kind: EntityKind
    operation: ChangeOperation
    new: dict[str, Any] | None = None
    old: dict[str, Any] | None = None
    received_at: datetime = field(default_factory=datetime.now)

    @property
    def record(self) -> dict[str, Any]:
        """The most relevant record: new for inserts/updates, old for deletes."""
        return self.new or self.old or {}

    @property
    def entity_id(self) -> str | None:
        value = self.record.get("id")
        return str(value) if value is not None else None


class Subscription(Protocol):
    async def __aenter__(self) -> "Subscription":
        ...

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        ...

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        ...


class ChangeChannel(Protocol):
    def subscribe(self, kind: EntityKind, filters: dict[str, Any] | None = None) -> Subscription:
        ...


_CLOSED = object()


class LocalSubscription:
    """Queue-backed subscription handed out by ``LocalChangeChannel``."""

    def __init__(self, channel: "LocalChangeChannel", kind: EntityKind, filters: dict[str, Any]):
        self.channel = channel
        self.kind = kind
        self.filters = filters
        self.id = next(channel._ids)
        self._queue: asyncio.Queue = asyncio.Queue()
        self.active = False

    def matches(self, event: ChangeEvent) -> bool:
        if event.kind != self.kind:
            return False
        record = event.record
        return all(record.get(key) == value for key, value in self.filters.items())

    def _put(self, item: Any) -> None:
        self._queue.put_nowait(item)

    async def __aenter__(self) -> "LocalSubscription":
        if self.channel.failed:
            raise ChannelError(f"Cannot subscribe to {self.kind.value} changes: channel error")
        self.channel._register(self)
        self.active = True
        logger.debug(f"Subscribed to {self.kind.value} changes (#{self.id})")
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.channel._unregister(self)
        self.active = False
        logger.debug(f"Released {self.kind.value} subscription (#{self.id})")

    def __aiter__(self) -> "LocalSubscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item


class LocalChangeChannel:
    """In-process change channel.

    Stores publish events here after each write; tests and shutdown code use
    ``close()`` and ``fail()`` to drive subscribers' connection states.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[int, LocalSubscription] = {}
        self._ids = itertools.count(1)
        self.failed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, kind: EntityKind, filters: dict[str, Any] | None = None) -> LocalSubscription:
        return LocalSubscription(self, kind, dict(filters or {}))

    def publish(self, event: ChangeEvent) -> int:
        """Deliver an event to matching subscribers. Returns the delivery count."""
        delivered = 0
        for sub in list(self._subscriptions.values()):
            if sub.matches(event):
                sub._put(event)
                delivered += 1
        return delivered

    def close(self) -> None:
        """End every active subscription normally."""
        for sub in list(self._subscriptions.values()):
            sub._put(_CLOSED)

    def fail(self, message: str = "channel error") -> None:
        """Fail every active subscription and refuse new ones until ``reset()``."""
        self.failed = True
        for sub in list(self._subscriptions.values()):
            sub._put(ChannelError(message))

    def reset(self) -> None:
        self.failed = False

    def _register(self, sub: LocalSubscription) -> None:
        self._subscriptions[sub.id] = sub

    def _unregister(self, sub: LocalSubscription) -> None:
        self._subscriptions.pop(sub.id, None)

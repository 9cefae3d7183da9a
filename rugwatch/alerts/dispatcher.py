"""
In-process notification fan-out for warning and chat events.

Topics are (event kind, optional key). Warning-updated events are keyed by
warning id and chat events by room id; a subscriber with no key receives
every event of its kind. Delivery is at-most-once and best-effort: there is
no persistence or replay, a late subscriber never sees earlier events, and a
subscriber whose buffer is full misses the event instead of slowing the
publisher.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from rugwatch.logging import get_logger
from rugwatch.warning_signs.models import utcnow

logger = get_logger(__name__)

DEFAULT_SUBSCRIBER_BUFFER = 100


class EventKind(str, Enum):
    WARNING_CREATED = "warning_created"
    WARNING_UPDATED = "warning_updated"
    CHAT_MESSAGE_SENT = "chat_message_sent"
    CHAT_MESSAGE_UPDATED = "chat_message_updated"


@dataclass
class Event:
    kind: EventKind
    payload: dict[str, Any]
    key: str | None = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind.value,
            "key": self.key,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


class Subscription:
    """Buffered receiver for one topic. Iterate or await get(); close() to detach."""

    def __init__(self, dispatcher: "NotificationDispatcher", kind: EventKind, key: str | None, buffer: int) -> None:
        self.kind = kind
        self.key = key
        self._dispatcher = dispatcher
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=buffer)
        self.dropped = 0

    def _offer(self, event: Event) -> bool:
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False

    async def get(self) -> Event:
        return await self._queue.get()

    def get_nowait(self) -> Event | None:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def close(self) -> None:
        self._dispatcher.unsubscribe(self)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Event:
        return await self.get()


class NotificationDispatcher:
    def __init__(self, buffer: int = DEFAULT_SUBSCRIBER_BUFFER) -> None:
        self._buffer = buffer
        self._topics: dict[tuple[EventKind, str | None], list[Subscription]] = {}

    def subscribe(self, kind: EventKind, key: str | None = None) -> Subscription:
        sub = Subscription(self, kind, key, self._buffer)
        self._topics.setdefault((kind, key), []).append(sub)
        logger.debug("dispatcher_subscribed", kind=kind.value, key=key)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        subs = self._topics.get((sub.kind, sub.key))
        if not subs or sub not in subs:
            return
        subs.remove(sub)
        if not subs:
            del self._topics[(sub.kind, sub.key)]

    def subscriber_count(self, kind: EventKind, key: str | None = None) -> int:
        count = len(self._topics.get((kind, None), []))
        if key is not None:
            count += len(self._topics.get((kind, key), []))
        return count

    def publish(self, kind: EventKind, payload: dict[str, Any], key: str | None = None) -> int:
        """Deliver to current subscribers of the kind (wildcard and keyed). Returns deliveries."""
        event = Event(kind=kind, payload=payload, key=key)
        targets = list(self._topics.get((kind, None), []))
        if key is not None:
            targets.extend(self._topics.get((kind, key), []))
        delivered = 0
        for sub in targets:
            if sub._offer(event):
                delivered += 1
            else:
                logger.warning("dispatcher_subscriber_full", kind=kind.value, key=key, dropped=sub.dropped)
        logger.debug("dispatcher_published", kind=kind.value, key=key, delivered=delivered)
        return delivered

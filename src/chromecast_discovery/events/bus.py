"""Async event bus for device lifecycle events.

Discovery components publish events (device online, updated, offline),
and consumers receive them through async callbacks. Publishing is
synchronous so it can be called from reconciliation code; delivery is
scheduled on the running event loop.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Awaitable
from uuid import uuid4

logger = logging.getLogger(__name__)

# Type alias for subscriber callbacks
EventCallback = Callable[[dict[str, Any]], Awaitable[None]]


@dataclass
class Subscription:
    """Represents an active event subscription."""

    id: str = field(default_factory=lambda: uuid4().hex)
    event_types: list[str] = field(default_factory=list)
    callback: EventCallback | None = None


class EventBus:
    """Async pub/sub event bus.

    Every published event gets a monotonically increasing sequence
    number. A subscription removed before its delivery task runs does not
    receive the event.
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._pending: set[asyncio.Task[None]] = set()
        self._seq = 0

    @property
    def subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions)

    def publish(self, event_type: str, payload: dict[str, Any]) -> int:
        """Notify matching subscribers. Returns the sequence number."""
        self._seq += 1
        event = {"seq": self._seq, "event_type": event_type, **payload}

        for sub in list(self._subscriptions):
            if "*" in sub.event_types or event_type in sub.event_types:
                if sub.callback is not None:
                    delivery = self._deliver(sub, event)
                    try:
                        task = asyncio.ensure_future(delivery)
                    except Exception:
                        delivery.close()
                        logger.exception(
                            "Error scheduling callback for subscription %s", sub.id
                        )
                        continue
                    self._pending.add(task)
                    task.add_done_callback(self._pending.discard)

        return self._seq

    async def _deliver(self, sub: Subscription, event: dict[str, Any]) -> None:
        if sub not in self._subscriptions or sub.callback is None:
            return
        try:
            await sub.callback(event)
        except Exception:
            logger.exception("Subscriber %s failed handling %s", sub.id, event["event_type"])

    def subscribe(
        self,
        event_types: list[str],
        callback: EventCallback,
    ) -> Subscription:
        """Register a callback for the given event types.

        Use ``["*"]`` to subscribe to all events.

        Returns a ``Subscription`` that can be passed to ``unsubscribe()``.
        """
        sub = Subscription(event_types=event_types, callback=callback)
        self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription."""
        self._subscriptions = [
            s for s in self._subscriptions if s.id != subscription.id
        ]

    def unsubscribe_all(self) -> None:
        """Detach every subscriber. Pending deliveries are dropped."""
        self._subscriptions = []

    async def drain(self) -> None:
        """Wait until all scheduled deliveries have finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

"""Turns registry state transitions into lifecycle events."""

from __future__ import annotations

import logging

from chromecast_discovery.events.bus import EventBus
from chromecast_discovery.events.types import EventType
from chromecast_discovery.models import CastDevice, ReconcileResult

logger = logging.getLogger(__name__)


class Notifier:
    """Publishes device events for reconciliation and eviction results."""

    def __init__(self, event_bus: EventBus) -> None:
        self._bus = event_bus

    def notify(self, result: ReconcileResult, device: CastDevice) -> list[str]:
        """Publish the events implied by *result*, in order.

        ``DEVICE`` goes first, followed by ``DEVICE_ONLINE`` for a new
        device or ``DEVICE_UPDATED`` for a changed one. Returns the event
        types published.
        """
        if result is ReconcileResult.NO_CHANGE:
            return []

        published = [EventType.DEVICE]
        if result is ReconcileResult.CREATED:
            logger.info(
                "Device online: %s (%s) at %s",
                device.friendly_name, device.uuid, device.host,
            )
            published.append(EventType.DEVICE_ONLINE)
        else:
            published.append(EventType.DEVICE_UPDATED)

        for event_type in published:
            self._bus.publish(event_type, {"device": device})
        return published

    def offline(self, device: CastDevice) -> None:
        logger.info("Device offline: %s (%s)", device.friendly_name, device.uuid)
        self._bus.publish(EventType.DEVICE_OFFLINE, {"device": device})

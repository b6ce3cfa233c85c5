"""Eviction of devices that stopped answering discovery queries."""

from __future__ import annotations

import logging

from chromecast_discovery.events.notifier import Notifier
from chromecast_discovery.models import CastDevice
from chromecast_discovery.registry import DeviceRegistry
from chromecast_discovery.scheduler import IntervalTimer

logger = logging.getLogger(__name__)


class GarbageCollector:
    """Evicts devices whose ``last_seen`` is older than *threshold* seconds.

    Active only when both *interval* and *threshold* are positive.
    Evicted devices are closed (failures are ignored), removed from the
    registry and announced with a ``device.offline`` event.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        notifier: Notifier,
        interval: float = 0,
        threshold: float = 0,
    ) -> None:
        self._registry = registry
        self._notifier = notifier
        self._threshold = threshold
        self._enabled = interval > 0 and threshold > 0
        self._timer = IntervalTimer(
            "Garbage collection", interval if self._enabled else 0, self.collect
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def is_running(self) -> bool:
        return self._timer.is_running

    def start(self) -> None:
        self._timer.start()

    async def stop(self) -> None:
        await self._timer.stop()

    def collect(self) -> list[CastDevice]:
        """Run one eviction pass. Returns the evicted devices."""
        if self._threshold <= 0:
            return []
        now = self._registry.now()
        evicted: list[CastDevice] = []

        # Snapshot so removals don't disturb iteration
        for device in list(self._registry.devices):
            if not device.last_seen or now - device.last_seen <= self._threshold:
                continue

            logger.debug("Garbage collecting device %s", device.uuid)
            try:
                device.close()
            except Exception:
                logger.debug("Ignoring close failure for %s", device.uuid, exc_info=True)

            self._registry.remove(device.uuid)
            self._notifier.offline(device)
            evicted.append(device)

        if evicted:
            logger.info("Evicted %d stale device(s)", len(evicted))
        return evicted

"""Device registry: staging table plus the public list of known devices.

Fragments from both protocols are staged per identifier. Once a fragment
is announceable the collectors call ``reconcile()``, which promotes it to
a ``CastDevice`` or refreshes the existing one. Reconciliation never
publishes events itself; it reports a ``ReconcileResult`` that the
``Notifier`` turns into events.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Iterator

from chromecast_discovery.models import CastDevice, ReconcileResult, StagedFragment

logger = logging.getLogger(__name__)

# Fields compared to decide whether a touch is an update.
_TRACKED_FIELDS: tuple[tuple[str, str], ...] = (
    ("discovery_name", "name"),
    ("friendly_name", "friendly_name"),
    ("host", "host"),
    ("manufacturer", "manufacturer"),
    ("model_name", "model_name"),
)


class DeviceRegistry:
    """Owns the staging table and the public device list.

    Parameters
    ----------
    clock:
        Returns the current time in epoch seconds. Injected for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._staging: dict[str, StagedFragment] = {}
        self._devices: list[CastDevice] = []

    @property
    def devices(self) -> list[CastDevice]:
        """Live list of announced devices, in discovery order."""
        return self._devices

    def now(self) -> float:
        return self._clock()

    def __len__(self) -> int:
        return len(self._devices)

    def __iter__(self) -> Iterator[CastDevice]:
        return iter(self._devices)

    def __contains__(self, uuid: object) -> bool:
        return self.get(uuid) is not None  # type: ignore[arg-type]

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    def fragment(self, uuid: str) -> StagedFragment | None:
        return self._staging.get(uuid)

    def stage(self, uuid: str) -> tuple[StagedFragment, bool]:
        """Return the fragment for *uuid*, creating it if needed.

        The boolean is True when the fragment was newly created.
        """
        existing = self._staging.get(uuid)
        if existing is not None:
            return existing, False
        fragment = StagedFragment()
        self._staging[uuid] = fragment
        return fragment, True

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def get(self, uuid: str) -> CastDevice | None:
        for device in self._devices:
            if device.uuid == uuid:
                return device
        return None

    def reconcile(self, uuid: str) -> tuple[ReconcileResult, CastDevice]:
        """Merge the staged fragment for *uuid* into the public list.

        Raises ``KeyError`` if nothing is staged for *uuid*; callers only
        reconcile identifiers they have just staged.
        """
        fragment = self._staging[uuid]
        last_seen = self._clock()

        device = self.get(uuid)
        if device is None:
            device = CastDevice(
                uuid=uuid,
                name=fragment.discovery_name,
                friendly_name=fragment.friendly_name,
                host=fragment.host,
                manufacturer=fragment.manufacturer,
                model_name=fragment.model_name,
                last_seen=last_seen,
            )
            self._devices.append(device)
            logger.debug("New device: %s", device)
            return ReconcileResult.CREATED, device

        changed = any(
            getattr(fragment, staged) != getattr(device, public)
            for staged, public in _TRACKED_FIELDS
        )
        for staged, public in _TRACKED_FIELDS:
            setattr(device, public, getattr(fragment, staged))
        device.last_seen = last_seen

        if changed:
            logger.debug("Updated device: %s", device)
            return ReconcileResult.UPDATED, device
        return ReconcileResult.NO_CHANGE, device

    def remove(self, uuid: str) -> CastDevice | None:
        """Drop *uuid* from both the staging table and the public list."""
        self._staging.pop(uuid, None)
        device = self.get(uuid)
        if device is not None:
            self._devices.remove(device)
        return device

    def clear(self) -> None:
        self._staging.clear()
        self._devices.clear()

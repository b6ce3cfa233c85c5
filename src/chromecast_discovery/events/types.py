"""Event type constants for the discovery event bus.

Components publish events using these types, and subscribers filter on
them. ``DEVICE`` fires for any new or changed device; the narrower types
fire alongside it.
"""

from __future__ import annotations


class EventType:
    """Namespace for event type string constants."""

    DEVICE = "device"
    DEVICE_ONLINE = "device.online"
    DEVICE_UPDATED = "device.updated"
    DEVICE_OFFLINE = "device.offline"

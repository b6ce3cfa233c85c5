"""Lifecycle events for discovered cast devices."""

from chromecast_discovery.events.bus import EventBus, Subscription
from chromecast_discovery.events.notifier import Notifier
from chromecast_discovery.events.types import EventType

__all__ = ["EventBus", "EventType", "Notifier", "Subscription"]

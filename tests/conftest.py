"""Shared test fixtures for cast discovery tests."""

from __future__ import annotations

import pathlib
from typing import Any

import pytest

from chromecast_discovery.events.bus import EventBus
from chromecast_discovery.events.notifier import Notifier
from chromecast_discovery.registry import DeviceRegistry

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]

CAST_UUID = "abcd1234abcd1234abcd1234abcd1234"
CAST_UUID_HYPHENATED = "abcd1234-abcd-1234-abcd-1234abcd1234"
CAST_INSTANCE = f"Chromecast-{CAST_UUID}._googlecast._tcp.local"


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class EventRecorder:
    """Collects every event published on a bus."""

    def __init__(self, bus: EventBus) -> None:
        self.events: list[dict[str, Any]] = []
        self._bus = bus
        bus.subscribe(["*"], self._record)

    async def _record(self, event: dict[str, Any]) -> None:
        self.events.append(event)

    async def settle(self) -> list[str]:
        """Wait for pending deliveries and return the event types seen."""
        await self._bus.drain()
        return self.types

    @property
    def types(self) -> list[str]:
        return [e["event_type"] for e in self.events]

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [e for e in self.events if e["event_type"] == event_type]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def repo_root() -> pathlib.Path:
    return REPO_ROOT


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock: FakeClock) -> DeviceRegistry:
    return DeviceRegistry(clock=clock)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def notifier(bus: EventBus) -> Notifier:
    return Notifier(bus)


@pytest.fixture
def recorder(bus: EventBus) -> EventRecorder:
    return EventRecorder(bus)

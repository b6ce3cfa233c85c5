"""Integration tests for CastDiscovery with in-memory transports.

The fake listeners stand in for the multicast sockets; everything behind
them (collectors, registry, notifier, event bus, timers) is real.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest
import pytest_asyncio

from chromecast_discovery.client import CastDiscovery
from chromecast_discovery.collectors.ssdp import SSDP_DEVICE_TYPE
from chromecast_discovery.config import Settings
from chromecast_discovery.events.types import EventType
from chromecast_discovery.models import MDNSAnswer, MDNSResponse, SRVData, SSDPResponse
from tests.conftest import CAST_UUID, CAST_UUID_HYPHENATED, EventRecorder, FakeClock

HYPHENATED_INSTANCE = f"Chromecast-{CAST_UUID_HYPHENATED}._googlecast._tcp.local"
LOCATION = "http://10.0.0.8:8008/ssdp/device-desc.xml"

DESCRIPTION_XML = """<?xml version="1.0"?>
<root xmlns="urn:schemas-upnp-org:device-1-0">
  <device>
    <deviceType>urn:dial-multiscreen-org:device:dial:1</deviceType>
    <friendlyName>{friendly_name}</friendlyName>
    <manufacturer>Google Inc.</manufacturer>
    <modelName>Eureka Dongle</modelName>
    <UDN>{udn}</UDN>
  </device>
</root>"""


class FakeMDNSListener:
    def __init__(self, on_response, fail: bool = False) -> None:
        self.on_response = on_response
        self.fail = fail
        self.started = False
        self.closed = False
        self.queries = 0

    async def start(self) -> None:
        if self.fail:
            raise OSError("address in use")
        self.started = True

    def query(self) -> None:
        self.queries += 1

    def close(self) -> None:
        self.closed = True


class FakeSSDPListener:
    def __init__(self, on_response, search_target: str) -> None:
        self.on_response = on_response
        self.search_target = search_target
        self.started = False
        self.closed = False
        self.searches = 0

    async def start(self) -> None:
        self.started = True

    def search(self) -> None:
        self.searches += 1

    def close(self) -> None:
        self.closed = True


class Harness:
    """Builds a CastDiscovery wired to fake listeners and a mock HTTP server."""

    def __init__(self, settings: Settings, mdns_fails: bool = False) -> None:
        self.clock = FakeClock()
        self.mdns: FakeMDNSListener | None = None
        self.ssdp: FakeSSDPListener | None = None
        self.descriptions: dict[str, str] = {}
        self.http = httpx.AsyncClient(transport=httpx.MockTransport(self._serve))
        self.discovery = CastDiscovery(
            settings,
            clock=self.clock,
            http_client=self.http,
            mdns_listener_factory=self._make_mdns(mdns_fails),
            ssdp_listener_factory=self._make_ssdp,
        )
        self.recorder = EventRecorder(self.discovery.event_bus)

    def _serve(self, request: httpx.Request) -> httpx.Response:
        body = self.descriptions.get(str(request.url))
        if body is None:
            return httpx.Response(404)
        return httpx.Response(200, text=body)

    def _make_mdns(self, fail: bool):
        def factory(on_response) -> FakeMDNSListener:
            self.mdns = FakeMDNSListener(on_response, fail=fail)
            return self.mdns

        return factory

    def _make_ssdp(self, on_response, search_target: str) -> FakeSSDPListener:
        self.ssdp = FakeSSDPListener(on_response, search_target)
        return self.ssdp

    def send_mdns(self, *answers: MDNSAnswer, responder: str = "10.0.0.5") -> None:
        self.mdns.on_response(MDNSResponse(responder=responder, answers=list(answers)))

    async def send_ssdp(self, friendly_name: str, udn: str, responder: str = "10.0.0.8") -> None:
        self.descriptions[LOCATION] = DESCRIPTION_XML.format(friendly_name=friendly_name, udn=udn)
        task = self.ssdp.on_response(
            SSDPResponse(
                status_code=200,
                headers={"location": LOCATION, "st": SSDP_DEVICE_TYPE},
                responder=responder,
            )
        )
        await task


def ptr(instance: str = HYPHENATED_INSTANCE) -> MDNSAnswer:
    return MDNSAnswer(type="PTR", name="_googlecast._tcp.local", data=instance)


def srv(instance: str = HYPHENATED_INSTANCE) -> MDNSAnswer:
    return MDNSAnswer(type="SRV", name=instance, data=SRVData(target="cast.local", port=8009))


def txt(*chunks: bytes, instance: str = HYPHENATED_INSTANCE) -> MDNSAnswer:
    return MDNSAnswer(type="TXT", name=instance, data=list(chunks))


@pytest_asyncio.fixture
async def harness():
    h = Harness(Settings())
    await h.discovery.start()
    yield h
    await h.discovery.stop()
    await h.http.aclose()


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_opens_transports_and_queries(self, harness: Harness) -> None:
        assert harness.discovery.is_running
        assert harness.mdns.started and harness.mdns.queries == 1
        assert harness.ssdp.started and harness.ssdp.searches == 1
        assert harness.ssdp.search_target == "urn:dial-multiscreen-org:device:dial:1"

    @pytest.mark.asyncio
    async def test_update_requeries_both_protocols(self, harness: Harness) -> None:
        harness.discovery.update()
        assert harness.mdns.queries == 2
        assert harness.ssdp.searches == 2

    @pytest.mark.asyncio
    async def test_stop_tears_everything_down(self) -> None:
        h = Harness(Settings(gc_interval=1, gc_threshold=2, update_interval=1))
        await h.discovery.start()
        assert h.discovery.garbage_collector.is_running

        h.send_mdns(ptr(), srv(), txt(b"fn=Den"))
        assert await h.recorder.settle() == [EventType.DEVICE, EventType.DEVICE_ONLINE]
        h.recorder.clear()

        mdns_callback = h.mdns.on_response
        await h.discovery.stop()
        mdns_callback(MDNSResponse(responder="10.0.0.6", answers=[srv(), txt(b"fn=Attic")]))
        h.discovery.event_bus.publish(EventType.DEVICE_OFFLINE, {"device": None})
        await h.discovery.event_bus.drain()

        assert h.recorder.events == []
        assert h.mdns.closed and h.ssdp.closed
        assert h.discovery.devices == []
        assert not h.discovery.is_running
        assert not h.discovery.garbage_collector.is_running
        assert h.discovery.event_bus.subscriptions == []
        # Injected client is left open for its owner
        assert not h.http.is_closed
        await h.http.aclose()

    @pytest.mark.asyncio
    async def test_no_fragments_accepted_after_stop(self, harness: Harness) -> None:
        on_response = harness.mdns.on_response
        await harness.discovery.stop()
        on_response(MDNSResponse(responder="10.0.0.5", answers=[ptr(), srv(), txt(b"fn=Den")]))
        assert harness.discovery.devices == []

    @pytest.mark.asyncio
    async def test_disabled_protocols_not_started(self) -> None:
        h = Harness(Settings(mdns_enabled=False, ssdp_enabled=False))
        await h.discovery.start()
        assert h.mdns is None and h.ssdp is None
        h.discovery.update()
        await h.discovery.stop()
        await h.http.aclose()

    @pytest.mark.asyncio
    async def test_mdns_start_failure_keeps_ssdp(self) -> None:
        h = Harness(Settings(), mdns_fails=True)
        await h.discovery.start()
        assert h.mdns.queries == 0
        assert h.ssdp.searches == 1
        await h.discovery.stop()
        await h.http.aclose()

    @pytest.mark.asyncio
    async def test_async_context_manager(self) -> None:
        h = Harness(Settings())
        async with h.discovery as discovery:
            assert discovery.is_running
        assert not h.discovery.is_running
        await h.http.aclose()


# ---------------------------------------------------------------------------
# End-to-end discovery
# ---------------------------------------------------------------------------

class TestDiscovery:
    @pytest.mark.asyncio
    async def test_mdns_discovery(self, harness: Harness) -> None:
        harness.send_mdns(ptr())
        assert harness.discovery.devices == []

        harness.send_mdns(srv(), txt(b"id=x", b"fn=Living Room TV", b"md=Chromecast"))

        assert len(harness.discovery.devices) == 1
        device = harness.discovery.get_device(CAST_UUID)
        assert device.host == "10.0.0.5"
        assert device.friendly_name == "Living Room TV"
        assert device.name == HYPHENATED_INSTANCE
        await harness.recorder.settle()
        assert len(harness.recorder.of_type(EventType.DEVICE_ONLINE)) == 1

    @pytest.mark.asyncio
    async def test_ssdp_discovery(self, harness: Harness) -> None:
        await harness.send_ssdp("Kitchen", "uuid:1111-2222-3333-4444-555566667777")

        assert len(harness.discovery.devices) == 1
        device = harness.discovery.devices[0]
        assert device.name == "Chromecast-1111222233334444555566667777._googlecast._tcp.local"
        assert device.friendly_name == "Kitchen"
        assert device.host == "10.0.0.8"
        await harness.recorder.settle()
        assert len(harness.recorder.of_type(EventType.DEVICE_ONLINE)) == 1

    @pytest.mark.asyncio
    async def test_mdns_then_ssdp_keeps_mdns_name(self, harness: Harness) -> None:
        harness.send_mdns(ptr(), srv(), txt(b"fn=Living Room TV"))
        await harness.send_ssdp("Living Room TV", f"uuid:{CAST_UUID_HYPHENATED}")

        assert len(harness.discovery.devices) == 1
        device = harness.discovery.devices[0]
        assert device.uuid == CAST_UUID
        assert device.name == HYPHENATED_INSTANCE
        assert device.host == "10.0.0.8"
        assert await harness.recorder.settle() == [
            EventType.DEVICE,
            EventType.DEVICE_ONLINE,
            EventType.DEVICE,
            EventType.DEVICE_UPDATED,
        ]

    @pytest.mark.asyncio
    async def test_unreachable_description_ignored(self, harness: Harness) -> None:
        task = harness.ssdp.on_response(
            SSDPResponse(
                status_code=200,
                headers={"location": "http://10.0.0.9/missing.xml"},
                responder="10.0.0.9",
            )
        )
        await task
        assert harness.discovery.devices == []
        assert harness.discovery.ssdp_collector.discarded["fetch_failed"] == 1

    @pytest.mark.asyncio
    async def test_subscriber_receives_device(self, harness: Harness) -> None:
        received: list[dict[str, Any]] = []

        async def on_online(event: dict[str, Any]) -> None:
            received.append(event)

        harness.discovery.subscribe([EventType.DEVICE_ONLINE], on_online)
        harness.send_mdns(ptr(), srv(), txt(b"fn=Den"))
        await harness.discovery.event_bus.drain()

        assert len(received) == 1
        assert received[0]["device"] is harness.discovery.get_device(CAST_UUID)


# ---------------------------------------------------------------------------
# Garbage collection
# ---------------------------------------------------------------------------

class TestGarbageCollection:
    @pytest.mark.asyncio
    async def test_stale_device_goes_offline(self) -> None:
        h = Harness(Settings(gc_interval=0.05, gc_threshold=2))
        await h.discovery.start()
        h.send_mdns(ptr(), srv(), txt(b"fn=Den"))
        h.clock.advance(3)

        await asyncio.sleep(0.2)
        await h.discovery.event_bus.drain()

        assert h.discovery.devices == []
        assert len(h.recorder.of_type(EventType.DEVICE_OFFLINE)) == 1
        await h.discovery.stop()
        await h.http.aclose()

"""Cast device discovery client.

Wires the transports, collectors, registry, notifier and timers together::

    async with CastDiscovery(Settings(gc_interval=10, gc_threshold=30)) as discovery:
        discovery.subscribe([EventType.DEVICE_ONLINE], on_online)
        ...

Lifecycle:
    1. ``start()`` opens the enabled transports, sends the initial mDNS
       query and SSDP search, and starts the refresh and GC timers.
    2. Responses flow through the collectors into the registry; events
       are published on ``event_bus``.
    3. ``stop()`` stops the timers, closes transports and in-flight
       fetches, detaches all subscribers and clears the registry.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import httpx

from chromecast_discovery.collectors.mdns import MDNSCollector
from chromecast_discovery.collectors.ssdp import SSDP_DEVICE_TYPE, SSDPCollector
from chromecast_discovery.config import Settings
from chromecast_discovery.events.bus import EventBus, EventCallback, Subscription
from chromecast_discovery.events.notifier import Notifier
from chromecast_discovery.garbage import GarbageCollector
from chromecast_discovery.models import CastDevice, MDNSResponse, SSDPResponse
from chromecast_discovery.registry import DeviceRegistry
from chromecast_discovery.scheduler import RefreshScheduler
from chromecast_discovery.transport.mdns import MDNSListener
from chromecast_discovery.transport.ssdp import SSDPListener

logger = logging.getLogger(__name__)

MDNSListenerFactory = Callable[[Callable[[MDNSResponse], None]], Any]
SSDPListenerFactory = Callable[[Callable[[SSDPResponse], Any], str], Any]


class CastDiscovery:
    """Discovers cast devices over mDNS and SSDP.

    Parameters
    ----------
    settings:
        Discovery options. Defaults to ``Settings()``.
    event_bus:
        Bus to publish lifecycle events on. Created if not provided.
    clock:
        Epoch-seconds clock used for ``last_seen``.
    http_client:
        Client for SSDP description fetches. Created (and closed on
        ``stop()``) if not provided.
    mdns_listener_factory:
        Builds the mDNS transport from a response callback.
    ssdp_listener_factory:
        Builds the SSDP transport from a response callback and search target.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        event_bus: EventBus | None = None,
        clock: Callable[[], float] = time.time,
        http_client: httpx.AsyncClient | None = None,
        mdns_listener_factory: MDNSListenerFactory = MDNSListener,
        ssdp_listener_factory: SSDPListenerFactory = SSDPListener,
    ) -> None:
        self._settings = settings or Settings()
        self._bus = event_bus or EventBus()
        self._registry = DeviceRegistry(clock=clock)
        self._notifier = Notifier(self._bus)
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._mdns_factory = mdns_listener_factory
        self._ssdp_factory = ssdp_listener_factory

        self._mdns_collector = MDNSCollector(
            self._registry,
            self._notifier,
            host_strategy=self._settings.mdns_host_strategy,
        )
        self._ssdp_collector: SSDPCollector | None = None
        self._mdns: Any | None = None
        self._ssdp: Any | None = None

        self._refresh = RefreshScheduler(self._settings.update_interval, self.update)
        self._gc = GarbageCollector(
            self._registry,
            self._notifier,
            interval=self._settings.gc_interval,
            threshold=self._settings.gc_threshold,
        )
        self._started = False

    # ------------------------------------------------------------------
    # Public state
    # ------------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def registry(self) -> DeviceRegistry:
        return self._registry

    @property
    def devices(self) -> list[CastDevice]:
        """Live list of announced devices."""
        return self._registry.devices

    @property
    def mdns_collector(self) -> MDNSCollector:
        return self._mdns_collector

    @property
    def ssdp_collector(self) -> SSDPCollector | None:
        return self._ssdp_collector

    @property
    def garbage_collector(self) -> GarbageCollector:
        return self._gc

    @property
    def is_running(self) -> bool:
        return self._started

    def get_device(self, uuid: str) -> CastDevice | None:
        return self._registry.get(uuid)

    def subscribe(self, event_types: list[str], callback: EventCallback) -> Subscription:
        return self._bus.subscribe(event_types, callback)

    def unsubscribe(self, subscription: Subscription) -> None:
        self._bus.unsubscribe(subscription)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Open transports, send the initial queries and start the timers."""
        if self._started:
            return
        self._started = True
        logger.info("Starting cast discovery")

        if self._settings.mdns_enabled:
            await self._start_mdns()
        if self._settings.ssdp_enabled:
            await self._start_ssdp()

        self._gc.start()
        self._refresh.start()

    async def stop(self) -> None:
        """Tear everything down. No events are delivered afterwards."""
        if not self._started:
            return
        self._started = False

        await self._refresh.stop()
        await self._gc.stop()

        self._mdns_collector.close()
        if self._mdns is not None:
            self._mdns.close()
            self._mdns = None

        if self._ssdp is not None:
            self._ssdp.close()
            self._ssdp = None
        if self._ssdp_collector is not None:
            await self._ssdp_collector.close()
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None

        self._bus.unsubscribe_all()
        self._registry.clear()
        logger.info("Cast discovery stopped")

    async def __aenter__(self) -> CastDiscovery:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    def update(self) -> None:
        """Re-issue the mDNS query and SSDP search."""
        self._query_mdns()
        self._search_ssdp()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _start_mdns(self) -> None:
        listener = self._mdns_factory(self._mdns_collector.handle_response)
        try:
            await listener.start()
        except OSError:
            logger.warning("mDNS listener failed to start", exc_info=True)
            return
        self._mdns = listener
        self._query_mdns()

    async def _start_ssdp(self) -> None:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient()
        self._ssdp_collector = SSDPCollector(
            self._registry,
            self._notifier,
            self._http_client,
            http_timeout_ms=self._settings.ssdp_device_endpoint_http_timeout,
        )
        listener = self._ssdp_factory(self._ssdp_collector.submit, SSDP_DEVICE_TYPE)
        try:
            await listener.start()
        except OSError:
            logger.warning("SSDP listener failed to start", exc_info=True)
            return
        self._ssdp = listener
        self._search_ssdp()

    def _query_mdns(self) -> None:
        if self._mdns is not None:
            self._mdns.query()

    def _search_ssdp(self) -> None:
        if self._ssdp is not None:
            self._ssdp.search()

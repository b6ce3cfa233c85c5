"""SSDP fragment collector.

For every successful M-SEARCH response, fetches the device description
XML from the LOCATION URL, keeps only DIAL devices, and stages the
description's fields under the identifier derived from its UDN.
Descriptions always carry a host and friendly name, so every accepted
response is reconciled immediately.
"""
from __future__ import annotations

import asyncio
import logging
from collections import Counter
from xml.etree import ElementTree

import httpx

from chromecast_discovery.events.notifier import Notifier
from chromecast_discovery.identifiers import normalize_uuid, strip_udn
from chromecast_discovery.models import DeviceDescription, SSDPResponse
from chromecast_discovery.registry import DeviceRegistry

logger = logging.getLogger(__name__)

SSDP_DEVICE_TYPE = "urn:dial-multiscreen-org:device:dial:1"
UPNP_NS = "urn:schemas-upnp-org:device-1-0"

DEFAULT_HTTP_TIMEOUT_MS = 5000


def synthesize_discovery_name(stripped_udn: str) -> str:
    """Build a Chromecast-style mDNS instance name from a stripped UDN."""
    return f"Chromecast-{stripped_udn}._googlecast._tcp.local"


def parse_device_description(xml_text: str) -> DeviceDescription | None:
    """Parse a UPnP device description XML.

    Returns None if the XML is malformed or has no <device> element.
    """
    if not xml_text.strip():
        return None

    try:
        root = ElementTree.fromstring(xml_text)
    except ElementTree.ParseError:
        return None

    # Try with UPnP namespace first, then without
    device = root.find(f"{{{UPNP_NS}}}device")
    if device is None:
        device = root.find("device")
    if device is None:
        return None

    def _text(tag: str) -> str | None:
        el = device.find(f"{{{UPNP_NS}}}{tag}")
        if el is None:
            el = device.find(tag)
        return el.text.strip() if el is not None and el.text and el.text.strip() else None

    return DeviceDescription(
        device_type=_text("deviceType"),
        friendly_name=_text("friendlyName"),
        manufacturer=_text("manufacturer"),
        model_name=_text("modelName"),
        udn=_text("UDN"),
    )


class SSDPCollector:
    """Consumes SSDP responses and stages cast device fragments.

    Parameters
    ----------
    registry:
        Registry owning the staging table.
    notifier:
        Publishes events for reconciliation results.
    http_client:
        Client used for description fetches. Owned by the caller.
    http_timeout_ms:
        Per-fetch timeout in milliseconds.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        notifier: Notifier,
        http_client: httpx.AsyncClient,
        http_timeout_ms: int = DEFAULT_HTTP_TIMEOUT_MS,
    ) -> None:
        self._registry = registry
        self._notifier = notifier
        self._client = http_client
        self._timeout = http_timeout_ms / 1000.0
        self._closed = False
        self._tasks: set[asyncio.Task[None]] = set()
        self.discarded: Counter[str] = Counter()

    def submit(self, response: SSDPResponse) -> asyncio.Task[None] | None:
        """Schedule ``handle_response`` as an independent task.

        Used as the transport callback so a slow description fetch never
        holds up other responses.
        """
        if self._closed:
            return None
        task = asyncio.create_task(self.handle_response(response))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def close(self) -> None:
        """Stop accepting responses and cancel in-flight fetches."""
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def handle_response(self, response: SSDPResponse) -> None:
        if self._closed:
            return
        location = response.location
        if response.status_code != 200 or not location:
            self._discard("bad_response", response.responder)
            return

        description = await self._fetch_description(location)
        if self._closed:
            return
        if description is None:
            self._discard("fetch_failed", location)
            return

        self._handle_description(description, response.responder)

    async def _fetch_description(self, url: str) -> DeviceDescription | None:
        """Fetch and parse a device description XML."""
        try:
            resp = await self._client.get(url, timeout=self._timeout)
            resp.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            logger.debug("Failed executing SSDP http request: url=%s, err=%s", url, exc)
            return None
        return parse_device_description(resp.text)

    def _handle_description(self, description: DeviceDescription, host: str) -> None:
        if description.device_type != SSDP_DEVICE_TYPE:
            self._discard("foreign_device_type", description.device_type)
            return
        if not description.friendly_name or not description.udn:
            self._discard("incomplete_description", description.udn)
            return

        stripped = strip_udn(description.udn)
        uuid = normalize_uuid(stripped)
        discovery_name = synthesize_discovery_name(stripped)

        fragment, created = self._registry.stage(uuid)
        fragment.udn = description.udn
        if created:
            fragment.discovery_name = discovery_name
            fragment.friendly_name = description.friendly_name
            fragment.host = host
            fragment.manufacturer = description.manufacturer
            fragment.model_name = description.model_name
        else:
            # A discovery name seen over mDNS is kept
            if not fragment.discovery_name:
                fragment.discovery_name = discovery_name
            fragment.friendly_name = description.friendly_name
            if host:
                fragment.host = host
            if description.manufacturer:
                fragment.manufacturer = description.manufacturer
            if description.model_name:
                fragment.model_name = description.model_name

        logger.debug("SSDP device %s (%s) at %s", description.friendly_name, uuid, host)
        result, device = self._registry.reconcile(uuid)
        self._notifier.notify(result, device)

    def _discard(self, reason: str, detail: object) -> None:
        self.discarded[reason] += 1
        logger.debug("Discarded SSDP response (%s): %s", reason, detail)

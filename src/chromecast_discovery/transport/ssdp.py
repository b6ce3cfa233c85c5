"""SSDP M-SEARCH transport.

Sends M-SEARCH requests to the SSDP multicast group from an ephemeral
port and delivers each unicast reply as an ``SSDPResponse``.
"""
from __future__ import annotations

import asyncio
import logging
import socket
from typing import Callable

from chromecast_discovery.models import SSDPResponse

logger = logging.getLogger(__name__)

SSDP_ADDR = "239.255.255.250"
SSDP_PORT = 1900

M_SEARCH_TEMPLATE = (
    "M-SEARCH * HTTP/1.1\r\n"
    "HOST: 239.255.255.250:1900\r\n"
    "MAN: \"ssdp:discover\"\r\n"
    "MX: {mx}\r\n"
    "ST: {st}\r\n"
    "\r\n"
)

ResponseCallback = Callable[[SSDPResponse], None]


def build_msearch(search_target: str, mx: int = 3) -> bytes:
    return M_SEARCH_TEMPLATE.format(mx=mx, st=search_target).encode()


def parse_ssdp_response(raw: str, source_ip: str) -> SSDPResponse | None:
    """Parse an SSDP M-SEARCH response into status code and headers.

    Returns None for anything that is not an HTTP response (e.g. other
    hosts' M-SEARCH or NOTIFY messages).
    """
    if not raw.strip():
        return None

    lines = raw.split("\r\n")
    status_line = lines[0].split(None, 2)
    if len(status_line) < 2 or not status_line[0].upper().startswith("HTTP/"):
        return None
    try:
        status_code = int(status_line[1])
    except ValueError:
        return None

    headers: dict[str, str] = {}
    for line in lines[1:]:
        if ":" in line:
            key, _, value = line.partition(":")
            headers[key.strip().lower()] = value.strip()

    return SSDPResponse(status_code=status_code, headers=headers, responder=source_ip)


class _SSDPProtocol(asyncio.DatagramProtocol):
    def __init__(self, listener: SSDPListener) -> None:
        self._listener = listener

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self._listener._on_datagram(data.decode("utf-8", errors="replace"), addr[0])

    def error_received(self, exc: Exception) -> None:
        logger.debug("SSDP socket error: %s", exc)


class SSDPListener:
    """SSDP search endpoint.

    Parameters
    ----------
    on_response:
        Called on the event loop for every parsed response.
    search_target:
        ST header value for M-SEARCH requests.
    """

    def __init__(self, on_response: ResponseCallback, search_target: str) -> None:
        self._on_response: ResponseCallback | None = on_response
        self._search_target = search_target
        self._transport: asyncio.DatagramTransport | None = None

    @property
    def is_open(self) -> bool:
        return self._transport is not None

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 2)
        sock.bind(("", 0))
        sock.setblocking(False)
        transport, _ = await loop.create_datagram_endpoint(
            lambda: _SSDPProtocol(self), sock=sock
        )
        self._transport = transport
        logger.info("SSDP listener started")

    def search(self) -> None:
        """Multicast an M-SEARCH for the configured search target."""
        if self._transport is None:
            return
        logger.debug("Searching SSDP for %s", self._search_target)
        try:
            self._transport.sendto(build_msearch(self._search_target), (SSDP_ADDR, SSDP_PORT))
        except OSError:
            logger.warning("Failed to send SSDP M-SEARCH", exc_info=True)

    def close(self) -> None:
        self._on_response = None
        if self._transport is not None:
            self._transport.close()
            self._transport = None
            logger.info("SSDP listener closed")

    def _on_datagram(self, raw: str, source_ip: str) -> None:
        if self._on_response is None:
            return
        response = parse_ssdp_response(raw, source_ip)
        if response is not None:
            self._on_response(response)

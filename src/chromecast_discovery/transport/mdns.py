"""mDNS query/response transport.

Joins the mDNS multicast group, sends PTR queries for the cast service,
and hands every decoded response to a callback together with the
responder's address. zeroconf provides the DNS wire codec.
"""
from __future__ import annotations

import asyncio
import logging
import socket
import struct
from typing import Callable

from zeroconf import DNSIncoming, DNSOutgoing, DNSPointer, DNSQuestion, DNSRecord, DNSService, DNSText
from zeroconf.const import _CLASS_IN, _FLAGS_QR_QUERY, _MDNS_ADDR, _MDNS_PORT, _TYPE_PTR

from chromecast_discovery.models import MDNSAnswer, MDNSResponse, SRVData

logger = logging.getLogger(__name__)

GOOGLECAST_QUERY_NAME = "_googlecast._tcp.local."

ResponseCallback = Callable[[MDNSResponse], None]


def split_txt(text: bytes) -> list[bytes]:
    """Split TXT wire data into its length-prefixed strings."""
    chunks: list[bytes] = []
    offset = 0
    while offset < len(text):
        length = text[offset]
        offset += 1
        chunk = text[offset : offset + length]
        offset += length
        if chunk:
            chunks.append(chunk)
    return chunks


def answer_from_record(record: DNSRecord) -> MDNSAnswer | None:
    """Convert a zeroconf record into an ``MDNSAnswer``.

    Returns None for record types discovery does not use.
    """
    name = record.name.rstrip(".")
    if isinstance(record, DNSPointer):
        return MDNSAnswer(type="PTR", name=name, data=record.alias.rstrip("."))
    if isinstance(record, DNSService):
        return MDNSAnswer(
            type="SRV",
            name=name,
            data=SRVData(target=record.server.rstrip("."), port=record.port),
        )
    if isinstance(record, DNSText):
        return MDNSAnswer(type="TXT", name=name, data=split_txt(record.text))
    return None


def decode_response(data: bytes, responder: str) -> MDNSResponse | None:
    """Decode a raw mDNS packet. Returns None for queries and garbage."""
    incoming = DNSIncoming(data)
    if not incoming.valid or not incoming.is_response():
        return None
    # answers() covers every section in wire order, additionals included
    answers = [
        answer
        for answer in (answer_from_record(r) for r in incoming.answers())
        if answer is not None
    ]
    return MDNSResponse(responder=responder, answers=answers)


def build_query(name: str = GOOGLECAST_QUERY_NAME) -> list[bytes]:
    out = DNSOutgoing(_FLAGS_QR_QUERY, multicast=True)
    out.add_question(DNSQuestion(name, _TYPE_PTR, _CLASS_IN))
    return out.packets()


def _create_multicast_socket() -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    if hasattr(socket, "SO_REUSEPORT"):
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        except OSError:
            pass
    sock.bind(("", _MDNS_PORT))
    membership = struct.pack("4s4s", socket.inet_aton(_MDNS_ADDR), socket.inet_aton("0.0.0.0"))
    sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
    sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 255)
    sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, 1)
    sock.setblocking(False)
    return sock


class _MDNSProtocol(asyncio.DatagramProtocol):
    def __init__(self, listener: MDNSListener) -> None:
        self._listener = listener

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self._listener._on_datagram(data, addr[0])

    def error_received(self, exc: Exception) -> None:
        logger.debug("mDNS socket error: %s", exc)


class MDNSListener:
    """Multicast mDNS endpoint.

    Parameters
    ----------
    on_response:
        Called on the event loop for every decoded response.
    """

    def __init__(self, on_response: ResponseCallback) -> None:
        self._on_response: ResponseCallback | None = on_response
        self._transport: asyncio.DatagramTransport | None = None

    @property
    def is_open(self) -> bool:
        return self._transport is not None

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        sock = _create_multicast_socket()
        transport, _ = await loop.create_datagram_endpoint(
            lambda: _MDNSProtocol(self), sock=sock
        )
        self._transport = transport
        logger.info("mDNS listener started on %s:%d", _MDNS_ADDR, _MDNS_PORT)

    def query(self) -> None:
        """Multicast a PTR query for the cast service."""
        if self._transport is None:
            return
        logger.debug("Querying mDNS for %s", GOOGLECAST_QUERY_NAME)
        for packet in build_query():
            try:
                self._transport.sendto(packet, (_MDNS_ADDR, _MDNS_PORT))
            except OSError:
                logger.warning("Failed to send mDNS query", exc_info=True)

    def close(self) -> None:
        self._on_response = None
        if self._transport is not None:
            self._transport.close()
            self._transport = None
            logger.info("mDNS listener closed")

    def _on_datagram(self, data: bytes, responder: str) -> None:
        if self._on_response is None:
            return
        try:
            response = decode_response(data, responder)
        except Exception:
            logger.debug("Undecodable mDNS packet from %s", responder, exc_info=True)
            return
        if response is not None:
            self._on_response(response)

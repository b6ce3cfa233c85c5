"""mDNS fragment collector.

Folds decoded PTR, SRV and TXT records for ``_googlecast._tcp.local``
into the registry's staging table. A PTR record has to arrive first; SRV
and TXT records for identifiers with nothing staged are dropped, and the
next periodic query brings them back in order.
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Iterable

from chromecast_discovery.events.notifier import Notifier
from chromecast_discovery.identifiers import normalize_uuid
from chromecast_discovery.models import MDNSAnswer, MDNSResponse
from chromecast_discovery.registry import DeviceRegistry

logger = logging.getLogger(__name__)

GOOGLECAST_SERVICE = "_googlecast._tcp.local"

HOST_STRATEGY_RINFO = "rinfo"
HOST_STRATEGY_SRV = "srv"


def decode_txt(data: Any) -> dict[str, str | bool]:
    """Decode TXT record data into a flat key/value mapping.

    *data* is either a single chunk or a list of chunks, each
    ``key=value`` as ``bytes`` or ``str``. Keys are lowercased; a chunk
    without ``=`` is a boolean flag. Later chunks win on collision.
    """
    if data is None:
        return {}
    chunks: Iterable[Any] = data if isinstance(data, (list, tuple)) else [data]

    decoded: dict[str, str | bool] = {}
    for chunk in chunks:
        if isinstance(chunk, (bytes, bytearray)):
            chunk = bytes(chunk).decode("utf-8", errors="replace")
        if not isinstance(chunk, str) or not chunk:
            continue
        key, sep, value = chunk.partition("=")
        if not key:
            continue
        decoded[key.lower()] = value if sep else True
    return decoded


def _text(value: str | bool | None) -> str | None:
    return value if isinstance(value, str) and value else None


class MDNSCollector:
    """Consumes decoded mDNS records and stages cast device fragments.

    Parameters
    ----------
    registry:
        Registry owning the staging table.
    notifier:
        Publishes events for reconciliation results.
    host_strategy:
        ``"rinfo"`` takes the host from the responder's address, ``"srv"``
        from the SRV record target.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        notifier: Notifier,
        host_strategy: str = HOST_STRATEGY_RINFO,
    ) -> None:
        self._registry = registry
        self._notifier = notifier
        self._host_strategy = host_strategy.lower()
        self._closed = False
        self.discarded: Counter[str] = Counter()

    def close(self) -> None:
        """Stop accepting records."""
        self._closed = True

    def handle_response(self, response: MDNSResponse) -> None:
        """Process answers, then additional records, of one response."""
        if self._closed:
            return
        for answer in response.answers:
            self.handle_answer(answer, response.responder)
        for answer in response.additionals:
            self.handle_answer(answer, response.responder)

    def handle_answer(self, answer: MDNSAnswer, responder: str) -> None:
        if self._closed:
            return
        record_type = answer.type.upper()
        if record_type == "PTR":
            self._on_ptr(answer)
        elif record_type == "SRV":
            self._on_srv(answer, responder)
        elif record_type == "TXT":
            self._on_txt(answer)

    # ------------------------------------------------------------------
    # Record handlers
    # ------------------------------------------------------------------

    def _on_ptr(self, answer: MDNSAnswer) -> None:
        if answer.name.rstrip(".") != GOOGLECAST_SERVICE:
            self._discard("foreign_ptr", answer)
            return
        if not isinstance(answer.data, str) or not answer.data:
            self._discard("empty_ptr", answer)
            return

        discovery_name = answer.data.rstrip(".")
        uuid = normalize_uuid(discovery_name)
        logger.debug("DNS [PTR]: %s -> %s", answer.name, discovery_name)

        fragment, created = self._registry.stage(uuid)
        fragment.discovery_name = discovery_name
        if not created:
            self._maybe_reconcile(uuid)

    def _on_srv(self, answer: MDNSAnswer, responder: str) -> None:
        discovery_name = answer.name.rstrip(".")
        uuid = normalize_uuid(discovery_name)
        fragment = self._registry.fragment(uuid)
        if fragment is None:
            self._discard("orphan_srv", answer)
            return

        logger.debug("DNS [SRV]: %s", answer)
        if self._host_strategy == HOST_STRATEGY_SRV:
            target = getattr(answer.data, "target", None)
            if target:
                fragment.host = target.rstrip(".")
        else:
            fragment.host = responder

        fragment.discovery_name = discovery_name
        self._maybe_reconcile(uuid)

    def _on_txt(self, answer: MDNSAnswer) -> None:
        discovery_name = answer.name.rstrip(".")
        uuid = normalize_uuid(discovery_name)
        fragment = self._registry.fragment(uuid)
        if fragment is None:
            self._discard("orphan_txt", answer)
            return

        logger.debug("DNS [TXT]: %s", answer)
        properties = decode_txt(answer.data)
        friendly_name = _text(properties.get("fn")) or _text(properties.get("n"))
        model_name = _text(properties.get("d"))

        fragment.discovery_name = discovery_name
        if friendly_name:
            fragment.friendly_name = friendly_name
        # SSDP description data wins over the TXT model name
        if model_name and not fragment.model_name:
            fragment.model_name = model_name

        self._maybe_reconcile(uuid)

    # ------------------------------------------------------------------

    def _maybe_reconcile(self, uuid: str) -> None:
        fragment = self._registry.fragment(uuid)
        if fragment is None or not fragment.announceable:
            return
        result, device = self._registry.reconcile(uuid)
        self._notifier.notify(result, device)

    def _discard(self, reason: str, answer: MDNSAnswer) -> None:
        self.discarded[reason] += 1
        logger.debug("Discarded mDNS %s record (%s): %s", answer.type, reason, answer.name)

"""Data model for cast device discovery.

Three groups of types live here:

* wire-level inputs handed over by the transports (``MDNSAnswer``,
  ``MDNSResponse``, ``SSDPResponse``, ``DeviceDescription``),
* the internal per-identifier staging record (``StagedFragment``),
* the public registry record (``CastDevice``).
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Transport inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SRVData:
    """Payload of an SRV record."""

    target: str
    port: int = 0


@dataclass(frozen=True)
class MDNSAnswer:
    """A single decoded mDNS resource record.

    ``data`` depends on ``type``: the instance name for PTR, an
    ``SRVData`` for SRV, and a list of raw ``bytes`` chunks for TXT.
    """

    type: str
    name: str
    data: Any = None


@dataclass(frozen=True)
class MDNSResponse:
    """All records of one mDNS response packet plus the sender's address."""

    responder: str
    answers: list[MDNSAnswer] = field(default_factory=list)
    additionals: list[MDNSAnswer] = field(default_factory=list)


@dataclass(frozen=True)
class SSDPResponse:
    """An SSDP M-SEARCH response. Header names are lowercased."""

    status_code: int
    headers: dict[str, str]
    responder: str

    @property
    def location(self) -> str | None:
        return self.headers.get("location") or None


@dataclass(frozen=True)
class DeviceDescription:
    """Fields of interest from a UPnP device description document."""

    device_type: str | None = None
    friendly_name: str | None = None
    manufacturer: str | None = None
    model_name: str | None = None
    udn: str | None = None


# ---------------------------------------------------------------------------
# Staging
# ---------------------------------------------------------------------------

@dataclass
class StagedFragment:
    """Partial knowledge about one device, accumulated from both protocols."""

    discovery_name: str | None = None
    friendly_name: str | None = None
    host: str | None = None
    manufacturer: str | None = None
    model_name: str | None = None
    udn: str | None = None

    @property
    def announceable(self) -> bool:
        """True once both a host and a friendly name are known."""
        return bool(self.host) and bool(self.friendly_name)


# ---------------------------------------------------------------------------
# Public registry record
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class CastDevice:
    """A fully-known cast device as published to consumers.

    Instances are owned by the registry and mutated in place on every
    reconciliation, so consumers holding a reference always see the
    current state.
    """

    uuid: str
    name: str | None
    friendly_name: str | None
    host: str | None
    manufacturer: str | None = None
    model_name: str | None = None
    last_seen: float = 0.0
    _close_callbacks: list[Callable[[], Any]] = field(
        default_factory=list, repr=False
    )

    def add_close_callback(self, callback: Callable[[], Any]) -> None:
        """Register a callable to run when the device is released."""
        self._close_callbacks.append(callback)

    def close(self) -> None:
        """Release resources tied to this device (e.g. control connections).

        Callbacks run in registration order. The first failure is raised
        after all callbacks have had a chance to run.
        """
        callbacks, self._close_callbacks = self._close_callbacks, []
        error: Exception | None = None
        for callback in callbacks:
            try:
                callback()
            except Exception as exc:
                logger.debug("Close callback failed for %s", self.uuid, exc_info=True)
                if error is None:
                    error = exc
        if error is not None:
            raise error

    def to_dict(self) -> dict[str, Any]:
        return {
            "uuid": self.uuid,
            "name": self.name,
            "friendly_name": self.friendly_name,
            "host": self.host,
            "manufacturer": self.manufacturer,
            "model_name": self.model_name,
            "last_seen": self.last_seen,
        }


class ReconcileResult(enum.Enum):
    """Outcome of merging a staged fragment into the registry."""

    NO_CHANGE = "no_change"
    CREATED = "created"
    UPDATED = "updated"

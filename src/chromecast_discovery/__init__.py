"""Chromecast discovery -- reconciles mDNS and SSDP announcements into one device registry."""

from pathlib import Path as _Path

def _read_version() -> str:
    """Read version from the repo-level VERSION file (single source of truth)."""
    for parent in _Path(__file__).resolve().parents:
        candidate = parent / "VERSION"
        if candidate.is_file():
            return candidate.read_text().strip()
    return "0.0.0"

__version__ = _read_version()

from chromecast_discovery.client import CastDiscovery  # noqa: E402
from chromecast_discovery.config import Settings, load_settings  # noqa: E402
from chromecast_discovery.events.types import EventType  # noqa: E402
from chromecast_discovery.models import CastDevice  # noqa: E402

__all__ = [
    "CastDevice",
    "CastDiscovery",
    "EventType",
    "Settings",
    "load_settings",
    "__version__",
]

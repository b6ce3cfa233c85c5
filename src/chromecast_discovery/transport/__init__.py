"""Thin multicast transports delivering decoded discovery messages."""

from chromecast_discovery.transport.mdns import MDNSListener
from chromecast_discovery.transport.ssdp import SSDPListener

__all__ = ["MDNSListener", "SSDPListener"]

"""Protocol fragment collectors feeding the device registry."""

from chromecast_discovery.collectors.mdns import MDNSCollector
from chromecast_discovery.collectors.ssdp import SSDPCollector

__all__ = ["MDNSCollector", "SSDPCollector"]

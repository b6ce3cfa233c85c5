"""Canonical device identifiers.

Cast devices identify themselves differently on each protocol: mDNS
instance names embed a bare 32-hex id (``Chromecast-<hex>._googlecast...``),
while SSDP descriptions carry a hyphenated ``uuid:`` UDN. Both are folded
into the same lowercase 32-character hex string.
"""
from __future__ import annotations

import re

UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    re.IGNORECASE,
)
UUID_NO_HYPHENS_PATTERN = re.compile(r"[0-9a-f]{32}", re.IGNORECASE)


def normalize_uuid(value: str) -> str:
    """Extract a canonical identifier from *value*.

    Returns the hyphen-stripped UUID if one is embedded, else the first
    32-hex run, else *value* unchanged.
    """
    match = UUID_PATTERN.search(value)
    if match:
        return match.group(0).replace("-", "").lower()

    match = UUID_NO_HYPHENS_PATTERN.search(value)
    if match:
        return match.group(0).lower()

    return value


def strip_udn(udn: str) -> str:
    """Remove every ``uuid:`` prefix and hyphen from an SSDP UDN."""
    return udn.replace("uuid:", "").replace("-", "")

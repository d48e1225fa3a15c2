"""Access control on client addresses."""

from __future__ import annotations

import ipaddress
from collections.abc import Sequence

from .base import IPAddress

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


def is_allowed(allowed_net: Sequence[IPNetwork] | None, ip: IPAddress | None) -> bool:
    """True if no networks are configured or one of them contains the address."""
    if not allowed_net:
        return True
    if ip is None:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return any(ip in network for network in allowed_net)
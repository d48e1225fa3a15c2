"""Client address extraction for queries received over HTTP."""

from __future__ import annotations

import ipaddress

from .acl import IPNetwork
from .base import IPAddress

MAX_FORWARDED_FOR = 1024


def _split_host(hostport: str) -> str | None:
    """Return the host part of ``host:port``, or None if the text has no valid form."""
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0 or not hostport[end + 1:].startswith(":"):
            return None
        return hostport[1:end]
    host, sep, _ = hostport.rpartition(":")
    if not sep or ":" in host:
        return None
    return host


def _parse_ip(text: str | None) -> IPAddress | None:
    if not text or "%" in text:
        return None
    try:
        ip = ipaddress.ip_address(text)
    except ValueError:
        return None
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


def extract_client_address(
    remote_addr: str,
    x_forwarded_for: str = "",
    proxy_net: IPNetwork | None = None,
) -> IPAddress | None:
    """Return the address of the client, honouring X-Forwarded-For from a trusted proxy.

    ``remote_addr`` is the peer in ``host:port`` form. When the peer lies in
    ``proxy_net``, the last entry of ``x_forwarded_for`` is used unless it is
    invalid or a loopback address. Returns None if the peer address is invalid.
    """
    client_ip = _parse_ip(_split_host(remote_addr))

    if proxy_net is None or not x_forwarded_for or len(x_forwarded_for) >= MAX_FORWARDED_FOR:
        return client_ip

    chain = x_forwarded_for.split(", ")
    if client_ip is not None and client_ip in proxy_net:
        forwarded = _parse_ip(chain[-1])
        if forwarded is not None and not forwarded.is_loopback:
            return forwarded
    return client_ip
"""Blocklist in hosts-file format, used to spoof or block queries.

IPv4 and IPv6 answers are spoofed independently. A name listed only with an
IPv4 address still matches AAAA queries, which are then blocked.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass

import dns.exception
import dns.rdatatype
import dns.reversename

from .base import BlocklistDB, BlocklistLoader, BlocklistMatch, IPAddress, Question


@dataclass
class _IPRecords:
    ip4: IPAddress | None = None
    ip6: IPAddress | None = None


def _parse_ip(text: str) -> tuple[IPAddress | None, bool]:
    """Parse an address; return it (or None) and whether it is IPv4."""
    try:
        ip = ipaddress.ip_address(text)
    except ValueError:
        return None, False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    is_ip4 = isinstance(ip, ipaddress.IPv4Address)
    if ip.is_unspecified:
        ip = None
    return ip, is_ip4


class HostsDB(BlocklistDB):
    """Name-to-address entries from hosts-file lines, plus a PTR map."""

    def __init__(self, name: str, loader: BlocklistLoader):
        self.name = name
        self.loader = loader
        self._filters: dict[str, _IPRecords] = {}
        self._ptr: dict[str, str] = {}
        for line in loader.load():
            fields = line.split()
            if len(fields) < 2 or fields[0].startswith("#"):
                continue
            ip_text, names = fields[0], fields[1:]
            ip, is_ip4 = _parse_ip(ip_text)
            for host in names:
                records = self._filters.setdefault(host.removesuffix("."), _IPRecords())
                if is_ip4:
                    records.ip4 = ip
                else:
                    records.ip6 = ip
            try:
                reverse = dns.reversename.from_address(ip_text).to_text()
            except (dns.exception.SyntaxError, ValueError):
                continue
            self._ptr[reverse] = names[0]

    def reload(self) -> HostsDB:
        return HostsDB(self.name, self.loader)

    def match(self, q: Question) -> BlocklistMatch | None:
        if q.qtype == dns.rdatatype.PTR:
            host = self._ptr.get(q.name)
            if host is None:
                return None
            return BlocklistMatch(self.name, host, name=host)
        host = q.name.removesuffix(".")
        records = self._filters.get(host)
        if records is None:
            return None
        ip = records.ip4 if q.qtype == dns.rdatatype.A else records.ip6
        shown = str(ip) if ip is not None else "<nil>"
        return BlocklistMatch(self.name, f"{shown} {host}", ip=ip)

    def __str__(self) -> str:
        return "Hosts"
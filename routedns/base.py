"""Core value types and the interfaces shared by resolvers, blocklists and loaders."""

from __future__ import annotations

import ipaddress
from abc import ABC, abstractmethod
from dataclasses import dataclass

import dns.message
import dns.rdataclass

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


@dataclass(frozen=True)
class BlocklistMatch:
    """Result of a blocklist lookup: which list and rule matched.

    ``ip`` is an address to answer with instead of blocking, and ``name`` is a
    host name to answer PTR queries with. Both are optional.
    """

    list: str
    rule: str
    ip: IPAddress | None = None
    name: str = ""


@dataclass(frozen=True)
class Question:
    """A single DNS question: fully qualified name, type and class."""

    name: str
    qtype: int
    qclass: int = int(dns.rdataclass.IN)


@dataclass(frozen=True)
class ClientInfo:
    """Information about the client that sent a query."""

    source_ip: IPAddress | None = None
    doh_path: str = ""


def question_of(msg: dns.message.Message) -> Question:
    """Return the first question of a DNS message."""
    if not msg.question:
        raise ValueError("no question in query")
    rrset = msg.question[0]
    return Question(rrset.name.to_text(), int(rrset.rdtype), int(rrset.rdclass))


class Resolver(ABC):
    """Anything that answers DNS queries."""

    @abstractmethod
    def resolve(self, q: dns.message.Message, ci: ClientInfo) -> dns.message.Message | None:
        """Answer a query. ``None`` means the query is to be dropped."""


class BlocklistDB(ABC):
    """A set of rules that DNS questions are matched against."""

    @abstractmethod
    def reload(self) -> BlocklistDB:
        """Return a new instance of the same database with freshly loaded rules."""

    @abstractmethod
    def match(self, q: Question) -> BlocklistMatch | None:
        """Return the match for a question, or ``None`` if no rule matches."""


class IPBlocklistDB(ABC):
    """A set of rules that IP addresses are matched against."""

    @abstractmethod
    def reload(self) -> IPBlocklistDB:
        """Return a new instance of the same database with freshly loaded rules."""

    @abstractmethod
    def match(self, ip: IPAddress) -> BlocklistMatch | None:
        """Return the match for an address, or ``None`` if no rule matches."""

    def close(self) -> None:
        """Release any resources held by the database."""


class BlocklistLoader(ABC):
    """Source of blocklist rules."""

    @abstractmethod
    def load(self) -> list[str]:
        """Return the rules, one per line."""
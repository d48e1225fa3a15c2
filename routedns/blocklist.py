"""Resolver that blocks, spoofs or redirects queries matching a blocklist."""

from __future__ import annotations

import ipaddress
import logging
import threading
from dataclasses import dataclass

import dns.message
import dns.rcode
import dns.rdatatype
import dns.rrset

from .base import BlocklistDB, ClientInfo, Question, Resolver, question_of

log = logging.getLogger(__name__)

SPOOF_TTL = 3600


@dataclass
class BlocklistMetrics:
    """Counts of queries that were let through or blocked."""

    allowed: int = 0
    blocked: int = 0


class Blocklist(Resolver):
    """Answers matching queries with NXDOMAIN or a spoofed address.

    Queries matching the optional allowlist bypass the blocklist and go to
    the allowlist resolver, or to the upstream resolver if there is none.
    Queries matching the blocklist go to the blocklist resolver if one is
    given. Everything else is passed to the upstream resolver unchanged.
    Databases with a refresh period (seconds) are reloaded in the background.
    """

    def __init__(
        self,
        id: str,
        resolver: Resolver,
        *,
        blocklist_db: BlocklistDB | None = None,
        blocklist_refresh: float = 0.0,
        blocklist_resolver: Resolver | None = None,
        allowlist_db: BlocklistDB | None = None,
        allowlist_refresh: float = 0.0,
        allowlist_resolver: Resolver | None = None,
    ):
        self.id = id
        self.resolver = resolver
        self.blocklist_db = blocklist_db
        self.blocklist_refresh = blocklist_refresh
        self.blocklist_resolver = blocklist_resolver
        self.allowlist_db = allowlist_db
        self.allowlist_refresh = allowlist_refresh
        self.allowlist_resolver = allowlist_resolver
        self.metrics = BlocklistMetrics()
        self._lock = threading.Lock()
        self._stop = threading.Event()

        if blocklist_db is not None and blocklist_refresh > 0:
            self._start_refresh("blocklist_db", blocklist_refresh)
        if allowlist_db is not None and allowlist_refresh > 0:
            self._start_refresh("allowlist_db", allowlist_refresh)

    def resolve(self, q: dns.message.Message, ci: ClientInfo) -> dns.message.Message | None:
        question = question_of(q)
        with self._lock:
            blocklist_db = self.blocklist_db
            allowlist_db = self.allowlist_db

        if allowlist_db is not None:
            match = allowlist_db.match(question)
            if match is not None:
                self.metrics.allowed += 1
                target = self.allowlist_resolver if self.allowlist_resolver is not None else self.resolver
                log.debug("%s: %s matched allowlist %s rule %r, forwarding to %s",
                          self.id, question.name, match.list, match.rule, target)
                return target.resolve(q, ci)

        match = blocklist_db.match(question) if blocklist_db is not None else None
        if match is None:
            self.metrics.allowed += 1
            log.debug("%s: forwarding unmodified query %s to %s", self.id, question.name, self.resolver)
            return self.resolver.resolve(q, ci)

        self.metrics.blocked += 1
        log.debug("%s: %s matched blocklist %s rule %r", self.id, question.name, match.list, match.rule)

        if question.qtype == dns.rdatatype.PTR and match.name:
            return _ptr_response(q, question, match.name)

        if self.blocklist_resolver is not None:
            return self.blocklist_resolver.resolve(q, ci)

        answer = dns.message.make_response(q)
        ip = match.ip
        if isinstance(ip, ipaddress.IPv4Address) and question.qtype == dns.rdatatype.A:
            answer.answer.append(_rrset(question, dns.rdatatype.A, str(ip)))
            log.debug("%s: spoofing response", self.id)
            return answer
        if isinstance(ip, ipaddress.IPv6Address) and question.qtype == dns.rdatatype.AAAA:
            answer.answer.append(_rrset(question, dns.rdatatype.AAAA, str(ip)))
            log.debug("%s: spoofing response", self.id)
            return answer

        log.debug("%s: blocking request", self.id)
        answer.set_rcode(dns.rcode.NXDOMAIN)
        return answer

    def close(self) -> None:
        """Stop the background refresh of the databases."""
        self._stop.set()

    def __str__(self) -> str:
        return self.id

    def _start_refresh(self, attr: str, period: float) -> None:
        thread = threading.Thread(
            target=self._refresh_loop, args=(attr, period), name=f"{self.id}-{attr}", daemon=True
        )
        thread.start()

    def _refresh_loop(self, attr: str, period: float) -> None:
        while not self._stop.wait(period):
            log.debug("%s: reloading %s", self.id, attr)
            with self._lock:
                db = getattr(self, attr)
            try:
                new_db = db.reload()
            except Exception:
                log.exception("%s: failed to load rules", self.id)
                continue
            with self._lock:
                setattr(self, attr, new_db)


def _rrset(question: Question, rdtype: int, value: str) -> dns.rrset.RRset:
    return dns.rrset.from_text(question.name, SPOOF_TTL, question.qclass, rdtype, value)


def _ptr_response(q: dns.message.Message, question: Question, name: str) -> dns.message.Message:
    answer = dns.message.make_response(q)
    target = name if name.endswith(".") else name + "."
    answer.answer.append(_rrset(question, dns.rdatatype.PTR, target))
    return answer
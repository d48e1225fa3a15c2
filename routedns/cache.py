"""Resolver that caches upstream answers in memory for up to their TTL."""

from __future__ import annotations

import copy
import logging
import random
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from dataclasses import dataclass

import dns.flags
import dns.message
import dns.name
import dns.rcode
import dns.rdatatype
import dns.rrset

from .base import ClientInfo, Resolver, question_of

log = logging.getLogger(__name__)

AnswerShuffleFunc = Callable[[dns.message.Message], None]

DEFAULT_GC_PERIOD = 60.0
DEFAULT_NEGATIVE_TTL = 60
MAX_SERVFAIL_TTL = 300

_CACHEABLE_RCODES = frozenset(
    {dns.rcode.NOERROR, dns.rcode.NXDOMAIN, dns.rcode.REFUSED, dns.rcode.NOTIMP, dns.rcode.FORMERR}
)
_SHUFFLED_TYPES = frozenset({dns.rdatatype.A, dns.rdatatype.AAAA})

_Key = tuple[dns.name.Name, int, int]


@dataclass
class _CacheMetrics:
    hit: int = 0
    miss: int = 0
    entries: int = 0


@dataclass
class _CacheAnswer:
    msg: dns.message.Message
    timestamp: float
    expiry: float


class _LRU:
    """Ordered mapping that drops the least recently used entry when full."""

    def __init__(self, capacity: int):
        self.capacity = capacity
        self._items: OrderedDict[Hashable, _CacheAnswer] = OrderedDict()

    def get(self, key: Hashable) -> _CacheAnswer | None:
        item = self._items.get(key)
        if item is not None:
            self._items.move_to_end(key)
        return item

    def add(self, key: Hashable, item: _CacheAnswer) -> None:
        self._items[key] = item
        self._items.move_to_end(key)
        if self.capacity > 0:
            while len(self._items) > self.capacity:
                self._items.popitem(last=False)

    def delete(self, key: Hashable) -> None:
        self._items.pop(key, None)

    def delete_if(self, predicate: Callable[[_CacheAnswer], bool]) -> int:
        doomed = [key for key, item in self._items.items() if predicate(item)]
        for key in doomed:
            del self._items[key]
        return len(doomed)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


def _key(msg: dns.message.Message, name: dns.name.Name | None = None) -> _Key:
    rrset = msg.question[0]
    return (name if name is not None else rrset.name, int(rrset.rdtype), int(rrset.rdclass))


def _copy(msg: dns.message.Message) -> dns.message.Message:
    return copy.deepcopy(msg)


def _records(msg: dns.message.Message):
    for section in (msg.answer, msg.authority, msg.additional):
        for rrset in section:
            if rrset.rdtype != dns.rdatatype.OPT:
                yield rrset


def _reorder(rrset: dns.rrset.RRset, rdatas: list) -> None:
    ttl = rrset.ttl
    rrset.clear()
    for rd in rdatas:
        rrset.add(rd)
    rrset.ttl = ttl


class Cache(Resolver):
    """Keeps answers from its upstream resolver until their TTL runs out.

    Options:
      gc_period: seconds between garbage-collection runs, 60 if 0.
      capacity: maximum number of cached answers, 0 for no limit.
      negative_ttl: TTL for answers without records, 60 if 0.
      shuffle_answer: function applied to a cached answer before it is served.
      harden_below_nxdomain: answer NXDOMAIN for names below a cached
        NXDOMAIN (RFC 8020).
      flush_query: query name that empties the cache, disabled if empty.
      clock: source of the current time in seconds.
    """

    def __init__(
        self,
        id: str,
        resolver: Resolver,
        *,
        gc_period: float = DEFAULT_GC_PERIOD,
        capacity: int = 0,
        negative_ttl: int = DEFAULT_NEGATIVE_TTL,
        shuffle_answer: AnswerShuffleFunc | None = None,
        harden_below_nxdomain: bool = False,
        flush_query: str = "",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.id = id
        self.resolver = resolver
        self.gc_period = gc_period or DEFAULT_GC_PERIOD
        self.capacity = capacity
        self.negative_ttl = negative_ttl or DEFAULT_NEGATIVE_TTL
        self.shuffle_answer = shuffle_answer
        self.harden_below_nxdomain = harden_below_nxdomain
        self.flush_query = flush_query
        self.clock = clock
        self.metrics = _CacheMetrics()
        self._lru = _LRU(capacity)
        self._lock = threading.Lock()
        self._stop = threading.Event()
        threading.Thread(target=self._gc_loop, name=f"{id}-gc", daemon=True).start()

    def resolve(self, q: dns.message.Message, ci: ClientInfo) -> dns.message.Message | None:
        if not q.question:
            raise ValueError("no question in query")
        # Multiple questions are legal but unsupported by servers; bypass the cache.
        if len(q.question) > 1:
            return self.resolver.resolve(q, ci)

        question = question_of(q)
        if self.flush_query and self.flush_query == question.name:
            log.info("%s: flushing cache", self.id)
            self.flush()
            return dns.message.make_response(q)

        answer = self._answer_from_cache(q)
        if answer is not None:
            log.debug("%s: cache-hit for %s", self.id, question.name)
            self.metrics.hit += 1
            return answer
        self.metrics.miss += 1

        log.debug("%s: cache-miss for %s, forwarding to %s", self.id, question.name, self.resolver)
        answer = self.resolver.resolve(_copy(q), ci)
        if answer is None:
            return None
        if answer.flags & dns.flags.TC:
            return answer
        self._store(q, _copy(answer))
        return answer

    def flush(self) -> None:
        """Remove every entry from the cache."""
        with self._lock:
            self._lru.clear()

    def collect_garbage(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self.clock()
        with self._lock:
            removed = self._lru.delete_if(lambda item: now > item.expiry)
            total = len(self._lru)
        self.metrics.entries = total
        log.debug("%s: cache garbage collection, total=%d removed=%d", self.id, total, removed)
        return removed

    def close(self) -> None:
        """Stop the background garbage collection."""
        self._stop.set()

    def __enter__(self) -> Cache:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __str__(self) -> str:
        return self.id

    def _gc_loop(self) -> None:
        while not self._stop.wait(self.gc_period):
            self.collect_garbage()

    def _answer_from_cache(self, q: dns.message.Message) -> dns.message.Message | None:
        key = _key(q)
        answer = None
        timestamp = 0.0
        with self._lock:
            item = self._lru.get(key)
            if item is not None:
                if self.shuffle_answer is not None:
                    self.shuffle_answer(item.msg)
                answer = _copy(item.msg)
                timestamp = item.timestamp

        if answer is None and self.harden_below_nxdomain:
            if self._parent_is_nxdomain(q):
                response = dns.message.make_response(q)
                response.set_rcode(dns.rcode.NXDOMAIN)
                return response

        if answer is None:
            return None

        answer.id = q.id
        age = int(self.clock() - timestamp)
        for rrset in _records(answer):
            if age >= rrset.ttl:
                with self._lock:
                    self._lru.delete(key)
                return None
            rrset.ttl -= age
        return answer

    def _parent_is_nxdomain(self, q: dns.message.Message) -> bool:
        name = q.question[0].name
        with self._lock:
            while len(name) > 1:
                name = name.parent()
                if name == dns.name.root:
                    break
                item = self._lru.get(_key(q, name))
                if item is not None:
                    return item.msg.rcode() == dns.rcode.NXDOMAIN
        return False

    def _store(self, q: dns.message.Message, answer: dns.message.Message) -> None:
        now = self.clock()
        rcode = answer.rcode()
        lowest = min_ttl(answer)
        if rcode in _CACHEABLE_RCODES:
            ttl = lowest if lowest is not None else self.negative_ttl
        elif rcode == dns.rcode.SERVFAIL:
            # RFC 2308: SERVFAIL must not be cached for longer than 5 minutes.
            ttl = min(self.negative_ttl, MAX_SERVFAIL_TTL)
        else:
            return
        item = _CacheAnswer(msg=answer, timestamp=now, expiry=now + ttl)
        with self._lock:
            self._lru.add(_key(q), item)


def min_ttl(msg: dns.message.Message) -> int | None:
    """Lowest TTL of all records in a message (OPT excluded), or None if there are none."""
    ttls = [rrset.ttl for rrset in _records(msg)]
    return min(ttls) if ttls else None


def answer_shuffle_random(msg: dns.message.Message) -> None:
    """Put the A/AAAA records of each answer set in random order."""
    for rrset in msg.answer:
        if rrset.rdtype in _SHUFFLED_TYPES and len(rrset) > 1:
            rdatas = list(rrset)
            random.shuffle(rdatas)
            _reorder(rrset, rdatas)


def answer_shuffle_round_robin(msg: dns.message.Message) -> None:
    """Move the first A/AAAA record of each answer set to the end."""
    for rrset in msg.answer:
        if rrset.rdtype in _SHUFFLED_TYPES and len(rrset) > 1:
            rdatas = list(rrset)
            _reorder(rrset, rdatas[1:] + rdatas[:1])
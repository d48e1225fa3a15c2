import dns.flags
import dns.message
import dns.rcode
import dns.rdatatype
import dns.rrset
import pytest

from routedns.base import ClientInfo, Resolver
from routedns.cache import (
    Cache,
    answer_shuffle_random,
    answer_shuffle_round_robin,
    min_ttl,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class CountingResolver(Resolver):
    def __init__(self, func=None):
        self.hits = 0
        self.func = func

    def resolve(self, q, ci):
        self.hits += 1
        if self.func is not None:
            return self.func(q)
        return dns.message.make_response(q)


def a_answer(ttl_ref, *addresses):
    def func(q):
        a = dns.message.make_response(q)
        name = q.question[0].name
        a.answer.append(dns.rrset.from_text(name, ttl_ref[0], "IN", "A", *addresses))
        return a

    return func


def rcode_answer(rcode):
    def func(q):
        a = dns.message.make_response(q)
        a.set_rcode(rcode)
        return a

    return func


@pytest.fixture
def clock():
    return FakeClock()


def make_cache(resolver, clock, **kwargs):
    return Cache("test-cache", resolver, clock=clock, **kwargs)


def test_cache_ttl_and_expiry(clock):
    ttl = [3600]
    r = CountingResolver(a_answer(ttl, "127.0.0.1"))
    with make_cache(r, clock) as c:
        q = dns.message.make_query("example.com.", "A")
        a = c.resolve(q, ClientInfo())
        assert r.hits == 1
        assert a.answer[0].ttl == 3600

        clock.now += 1
        a = c.resolve(q, ClientInfo())
        assert r.hits == 1
        assert a.answer[0].ttl < 3600

        ttl[0] = 1
        q2 = dns.message.make_query("example2.com.", "A")
        a = c.resolve(q2, ClientInfo())
        assert r.hits == 2
        assert a.answer[0].ttl == 1

        clock.now += 1
        c.resolve(q2, ClientInfo())
        assert r.hits == 3


def test_cached_answer_keeps_query_id(clock):
    r = CountingResolver(a_answer([300], "127.0.0.1"))
    with make_cache(r, clock) as c:
        c.resolve(dns.message.make_query("example.com.", "A"), ClientInfo())
        q = dns.message.make_query("example.com.", "A")
        q.id = 4242
        a = c.resolve(q, ClientInfo())
        assert r.hits == 1
        assert a.id == 4242


def test_cache_nxdomain(clock):
    r = CountingResolver(rcode_answer(dns.rcode.NXDOMAIN))
    with make_cache(r, clock) as c:
        q = dns.message.make_query("example.com.", "A")
        c.resolve(q, ClientInfo())
        assert r.hits == 1
        a = c.resolve(q, ClientInfo())
        assert r.hits == 1
        assert a.rcode() == dns.rcode.NXDOMAIN


def test_cache_harden_below_nxdomain(clock):
    r = CountingResolver(rcode_answer(dns.rcode.NXDOMAIN))
    with make_cache(r, clock, harden_below_nxdomain=True) as c:
        c.resolve(dns.message.make_query("example.com.", "A"), ClientInfo())
        assert r.hits == 1
        a = c.resolve(dns.message.make_query("not.exist.example.com.", "A"), ClientInfo())
        assert r.hits == 1
        assert a.rcode() == dns.rcode.NXDOMAIN


def test_no_harden_by_default(clock):
    r = CountingResolver(rcode_answer(dns.rcode.NXDOMAIN))
    with make_cache(r, clock) as c:
        c.resolve(dns.message.make_query("example.com.", "A"), ClientInfo())
        c.resolve(dns.message.make_query("not.exist.example.com.", "A"), ClientInfo())
        assert r.hits == 2


def test_round_robin_shuffle():
    msg = dns.message.Message()
    msg.answer.append(dns.rrset.from_text("test.", 0, "IN", "CNAME", "test."))
    msg.answer.append(dns.rrset.from_text("test.", 0, "IN", "A", "0.0.0.1", "0.0.0.2"))
    answer_shuffle_round_robin(msg)
    assert msg.answer[0].rdtype == dns.rdatatype.CNAME
    assert msg.answer[1].rdtype == dns.rdatatype.A
    assert [rd.address for rd in msg.answer[1]] == ["0.0.0.2", "0.0.0.1"]


def test_random_shuffle_keeps_records():
    msg = dns.message.Message()
    addresses = [f"10.0.0.{i}" for i in range(1, 9)]
    msg.answer.append(dns.rrset.from_text("test.", 30, "IN", "CNAME", "test."))
    msg.answer.append(dns.rrset.from_text("test.", 30, "IN", "A", *addresses))
    answer_shuffle_random(msg)
    assert msg.answer[0].rdtype == dns.rdatatype.CNAME
    assert sorted(rd.address for rd in msg.answer[1]) == sorted(addresses)
    assert msg.answer[1].ttl == 30


def test_round_robin_in_cache(clock):
    r = CountingResolver(a_answer([300], "0.0.0.1", "0.0.0.2"))
    with make_cache(r, clock, shuffle_answer=answer_shuffle_round_robin) as c:
        q = dns.message.make_query("example.com.", "A")
        first = c.resolve(q, ClientInfo())
        assert [rd.address for rd in first.answer[0]] == ["0.0.0.1", "0.0.0.2"]
        second = c.resolve(q, ClientInfo())
        assert [rd.address for rd in second.answer[0]] == ["0.0.0.2", "0.0.0.1"]
        third = c.resolve(q, ClientInfo())
        assert [rd.address for rd in third.answer[0]] == ["0.0.0.1", "0.0.0.2"]
        assert r.hits == 1


def test_cache_no_truncated(clock):
    def func(q):
        a = dns.message.make_response(q)
        a.flags |= dns.flags.TC
        return a

    r = CountingResolver(func)
    with make_cache(r, clock) as c:
        q = dns.message.make_query("example.com.", "A")
        c.resolve(q, ClientInfo())
        assert r.hits == 1
        c.resolve(q, ClientInfo())
        assert r.hits == 2


def test_flush_query(clock):
    r = CountingResolver(a_answer([300], "127.0.0.1"))
    with make_cache(r, clock, flush_query="flush.cache.") as c:
        q = dns.message.make_query("example.com.", "A")
        c.resolve(q, ClientInfo())
        c.resolve(q, ClientInfo())
        assert r.hits == 1
        reply = c.resolve(dns.message.make_query("flush.cache.", "A"), ClientInfo())
        assert r.hits == 1
        assert reply.rcode() == dns.rcode.NOERROR
        c.resolve(q, ClientInfo())
        assert r.hits == 2


def test_capacity_evicts_least_recently_used(clock):
    r = CountingResolver(a_answer([300], "127.0.0.1"))
    with make_cache(r, clock, capacity=2) as c:
        qa = dns.message.make_query("a.example.", "A")
        qb = dns.message.make_query("b.example.", "A")
        qc = dns.message.make_query("c.example.", "A")
        c.resolve(qa, ClientInfo())
        c.resolve(qb, ClientInfo())
        c.resolve(qa, ClientInfo())  # a becomes most recently used
        assert r.hits == 2
        c.resolve(qc, ClientInfo())  # evicts b
        assert r.hits == 3
        c.resolve(qa, ClientInfo())
        assert r.hits == 3
        c.resolve(qb, ClientInfo())
        assert r.hits == 4


def test_servfail_capped_at_five_minutes(clock):
    r = CountingResolver(rcode_answer(dns.rcode.SERVFAIL))
    with make_cache(r, clock, negative_ttl=600) as c:
        q = dns.message.make_query("example.com.", "A")
        c.resolve(q, ClientInfo())
        c.resolve(q, ClientInfo())
        assert r.hits == 1
        clock.now += 301
        assert c.collect_garbage() == 1
        c.resolve(q, ClientInfo())
        assert r.hits == 2


def test_uncacheable_rcode(clock):
    r = CountingResolver(rcode_answer(dns.rcode.YXDOMAIN))
    with make_cache(r, clock) as c:
        q = dns.message.make_query("example.com.", "A")
        c.resolve(q, ClientInfo())
        c.resolve(q, ClientInfo())
        assert r.hits == 2


def test_garbage_collection_keeps_fresh_entries(clock):
    r = CountingResolver(a_answer([100], "127.0.0.1"))
    with make_cache(r, clock) as c:
        c.resolve(dns.message.make_query("example.com.", "A"), ClientInfo())
        clock.now += 50
        assert c.collect_garbage() == 0
        assert c.metrics.entries == 1
        clock.now += 51
        assert c.collect_garbage() == 1
        assert c.metrics.entries == 0


def test_hit_and_miss_metrics(clock):
    r = CountingResolver(a_answer([300], "127.0.0.1"))
    with make_cache(r, clock) as c:
        q = dns.message.make_query("example.com.", "A")
        c.resolve(q, ClientInfo())
        c.resolve(q, ClientInfo())
        c.resolve(q, ClientInfo())
        assert (c.metrics.miss, c.metrics.hit) == (1, 2)


def test_upstream_none_is_returned(clock):
    r = CountingResolver(lambda q: None)
    with make_cache(r, clock) as c:
        q = dns.message.make_query("example.com.", "A")
        assert c.resolve(q, ClientInfo()) is None
        assert c.resolve(q, ClientInfo()) is None
        assert r.hits == 2


def test_multiple_questions_bypass_cache(clock):
    r = CountingResolver()
    with make_cache(r, clock) as c:
        q = dns.message.make_query("example.com.", "A")
        other = dns.message.make_query("example.org.", "A")
        q.question.append(other.question[0])
        c.resolve(q, ClientInfo())
        c.resolve(q, ClientInfo())
        assert r.hits == 2


def test_no_question_raises(clock):
    with make_cache(CountingResolver(), clock) as c:
        with pytest.raises(ValueError):
            c.resolve(dns.message.Message(), ClientInfo())


def test_min_ttl():
    msg = dns.message.Message()
    assert min_ttl(msg) is None
    msg.answer.append(dns.rrset.from_text("a.example.", 300, "IN", "A", "10.0.0.1"))
    msg.authority.append(dns.rrset.from_text("example.", 120, "IN", "NS", "ns.example."))
    msg.additional.append(dns.rrset.from_text("ns.example.", 600, "IN", "A", "10.0.0.2"))
    assert min_ttl(msg) == 120


def test_defaults_applied():
    with Cache("c", CountingResolver(), gc_period=0, negative_ttl=0) as c:
        assert c.gc_period == 60.0
        assert c.negative_ttl == 60
        assert str(c) == "c"
import dns.rdataclass
import dns.rdatatype
import pytest

from routedns.base import Question
from routedns.domain_db import DomainDB
from routedns.loaders import StaticLoader

RULES = [
    "domain1.com.",
    ".domain2.com.",
    "x.domain2.com",
    "*.domain3.com",
    "x.x.domain3.com",
    "domain4.com",
    ".domain4.com",
]


@pytest.fixture
def db():
    return DomainDB("testlist", StaticLoader(RULES))


def _q(name):
    return Question(name, dns.rdatatype.A, dns.rdataclass.IN)


@pytest.mark.parametrize(
    "name,expected",
    [
        ("domain1.com.", True),
        ("x.domain1.com.", False),
        ("domain2.com.", True),
        ("sub.domain2.com.", True),
        ("domain3.com.", False),
        ("sub.domain3.com.", True),
        ("domain4.com.", True),
        ("sub.domain4.com.", True),
        ("unblocked.test.", False),
        ("com.", False),
    ],
)
def test_domain_db_match(db, name, expected):
    assert (db.match(_q(name)) is not None) == expected


@pytest.mark.parametrize("rule", ["sub.*.com", "*domain.com"])
def test_domain_db_error(rule):
    with pytest.raises(ValueError):
        DomainDB("testlist", StaticLoader([rule]))


def test_domain_db_match_details(db):
    exact = db.match(_q("domain1.com."))
    assert exact.list == "testlist"
    assert exact.rule == "domain1.com"
    assert db.match(_q("sub.domain2.com.")).rule == ".domain2.com"
    assert db.match(_q("x.x.domain3.com.")).rule == "*.domain3.com"


def test_domain_db_reload(db):
    reloaded = db.reload()
    assert reloaded is not db
    assert reloaded.match(_q("sub.domain2.com.")) == db.match(_q("sub.domain2.com."))
    assert str(reloaded) == "Domain"
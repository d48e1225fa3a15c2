import re

import dns.rdatatype
import pytest

from routedns.base import Question
from routedns.loaders import FileLoader, StaticLoader
from routedns.regexp_db import RegexpDB

RULES = [r"(^|\.)block\.test", r"(^|\.)evil\.test"]


@pytest.fixture
def db():
    return RegexpDB("testlist", StaticLoader(RULES))


def test_regexp_db_no_match(db):
    assert db.match(Question("test.com.", dns.rdatatype.A)) is None


def test_regexp_db_match(db):
    match = db.match(Question("x.evil.test.", dns.rdatatype.A))
    assert match.list == "testlist"
    assert match.rule == RULES[1]


def test_regexp_db_skips_comments_and_blanks():
    db = RegexpDB("testlist", StaticLoader(["# evil", "   ", r"evil"]))
    match = db.match(Question("evil.test.", dns.rdatatype.A))
    assert match.rule == "evil"
    assert db.match(Question("good.test.", dns.rdatatype.A)) is None


def test_regexp_db_invalid():
    with pytest.raises(re.error):
        RegexpDB("testlist", StaticLoader(["(unclosed"]))


def test_regexp_db_reload_picks_up_changes(tmp_path):
    path = tmp_path / "rules"
    path.write_text("block\\.test\n")
    db = RegexpDB("file", FileLoader(path))
    q = Question("x.evil.test.", dns.rdatatype.A)
    assert db.match(q) is None
    path.write_text("evil\\.test\n")
    reloaded = db.reload()
    assert reloaded.match(q).rule == "evil\\.test"
    assert str(reloaded) == "Regexp"
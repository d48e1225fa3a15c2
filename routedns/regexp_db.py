"""Blocklist of regular expressions matched against query names."""

from __future__ import annotations

import re

from .base import BlocklistDB, BlocklistLoader, BlocklistMatch, Question


class RegexpDB(BlocklistDB):
    """Matches a query when any of its expressions is found in the name."""

    def __init__(self, name: str, loader: BlocklistLoader):
        self.name = name
        self.loader = loader
        self._rules: list[re.Pattern[str]] = []
        for rule in loader.load():
            rule = rule.strip()
            if not rule or rule.startswith("#"):
                continue
            self._rules.append(re.compile(rule))

    def reload(self) -> RegexpDB:
        return RegexpDB(self.name, self.loader)

    def match(self, q: Question) -> BlocklistMatch | None:
        for rule in self._rules:
            if rule.search(q.name):
                return BlocklistMatch(self.name, rule.pattern)
        return None

    def __str__(self) -> str:
        return "Regexp"
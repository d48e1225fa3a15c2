"""Blocklist of domain names with optional wildcards.

Matching rules:
  domain.com    matches only domain.com
  .domain.com   matches domain.com and all sub-domains
  *.domain.com  matches all sub-domains but not domain.com
"""

from __future__ import annotations

from .base import BlocklistDB, BlocklistLoader, BlocklistMatch, Question

_Node = dict[str, "_Node"]


class DomainDB(BlocklistDB):
    """Tree of domain labels, built from the rules of a loader."""

    def __init__(self, name: str, loader: BlocklistLoader):
        self.name = name
        self.loader = loader
        self._root: _Node = {}
        for rule in loader.load():
            rule = rule.strip().removesuffix(".")
            parts = rule.split(".")
            node = self._root
            for position, part in reversed(list(enumerate(parts))):
                if "*" in part and (position > 0 or len(part) != 1):
                    raise ValueError(f"invalid blocklist item: '{part}'")
                node = node.setdefault(part, {})

    def reload(self) -> DomainDB:
        return DomainDB(self.name, self.loader)

    def match(self, q: Question) -> BlocklistMatch | None:
        parts = q.name.removesuffix(".").split(".")
        matched: list[str] = []
        node = self._root
        for position, part in reversed(list(enumerate(parts))):
            sub = node.get(part)
            if sub is None:
                return None
            matched.append(part)
            if "" in sub:
                return BlocklistMatch(self.name, _rule(".", matched))
            if "*" in sub and position > 0:
                return BlocklistMatch(self.name, _rule("*.", matched))
            node = sub
        if node:
            return None
        return BlocklistMatch(self.name, _rule("", matched))

    def __str__(self) -> str:
        return "Domain"


def _rule(prefix: str, matched: list[str]) -> str:
    return prefix + ".".join(reversed(matched))
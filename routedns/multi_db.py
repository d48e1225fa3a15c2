"""A blocklist that combines several others."""

from __future__ import annotations

from .base import BlocklistDB, BlocklistMatch, Question


class MultiDB(BlocklistDB):
    """Queries each wrapped database in order; the first match wins."""

    def __init__(self, *dbs: BlocklistDB):
        self.dbs = list(dbs)

    def reload(self) -> MultiDB:
        return MultiDB(*(db.reload() for db in self.dbs))

    def match(self, q: Question) -> BlocklistMatch | None:
        for db in self.dbs:
            match = db.match(q)
            if match is not None:
                return match
        return None

    def __str__(self) -> str:
        return "Multi-Blocklist"
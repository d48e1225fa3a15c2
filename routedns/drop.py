"""Resolver that drops every query."""

from __future__ import annotations

import logging

import dns.message

from .base import ClientInfo, Resolver

log = logging.getLogger(__name__)


class DropResolver(Resolver):
    """Returns no answer, which tells listeners to drop the request."""

    def __init__(self, id: str):
        self.id = id

    def resolve(self, q: dns.message.Message, ci: ClientInfo) -> None:
        log.debug("%s: dropping query", self.id)
        return None

    def __str__(self) -> str:
        return self.id
"""Loaders that supply blocklist rules from memory, local files or HTTP(S)."""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
import time
import urllib.error
import urllib.request
from collections.abc import Iterable

from .base import BlocklistLoader

log = logging.getLogger(__name__)

HTTP_TIMEOUT = 30 * 60.0


def _split_lines(text: str) -> list[str]:
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


class StaticLoader(BlocklistLoader):
    """A fixed set of rules held in memory."""

    def __init__(self, rules: Iterable[str]):
        self.rules = list(rules)

    def load(self) -> list[str]:
        return list(self.rules)


class FileLoader(BlocklistLoader):
    """Reads rules from a local file, one per line."""

    def __init__(self, filename: str | os.PathLike):
        self.filename = os.fspath(filename)

    def load(self) -> list[str]:
        log.debug("loading blocklist from %s", self.filename)
        with open(self.filename, encoding="utf-8", errors="replace", newline="") as f:
            rules = _split_lines(f.read())
        log.debug("completed loading blocklist from %s", self.filename)
        return rules


class HTTPLoader(BlocklistLoader):
    """Reads rules from a server via HTTP(S), optionally caching them on disk.

    With a cache directory, the first load is served from the cached copy if
    one exists; every later load goes to the server and refreshes the cache.
    """

    def __init__(self, url: str, cache_dir: str | os.PathLike = ""):
        self.url = url
        self.cache_dir = os.fspath(cache_dir)
        self._from_disk = bool(self.cache_dir)

    def load(self) -> list[str]:
        log.debug("loading blocklist from %s", self.url)
        if self._from_disk:
            self._from_disk = False
            start = time.monotonic()
            try:
                rules = self._load_from_disk()
            except OSError as exc:
                log.warning("unable to load cached list from disk, loading from upstream: %s", exc)
            else:
                log.debug("loaded blocklist from cache-dir in %.3fs", time.monotonic() - start)
                return rules

        request = urllib.request.Request(self.url, method="GET")
        try:
            with urllib.request.urlopen(request, timeout=HTTP_TIMEOUT) as resp:
                status = resp.status
                if not 200 <= status <= 299:
                    raise OSError(f"got unexpected status code {status} from {self.url}")
                body = resp.read()
        except urllib.error.HTTPError as exc:
            raise OSError(f"got unexpected status code {exc.code} from {self.url}") from exc

        rules = _split_lines(body.decode("utf-8", errors="replace"))
        log.debug("completed loading blocklist from %s", self.url)

        if self.cache_dir:
            try:
                self._write_to_disk(rules)
            except OSError as exc:
                log.error("failed to write rules to cache: %s", exc)
        return rules

    def cache_filename(self) -> str:
        """Path of the cache file: the SHA256 of the URL inside the cache directory."""
        name = hashlib.sha256(self.url.encode()).hexdigest()
        return os.path.join(self.cache_dir, name)

    def _load_from_disk(self) -> list[str]:
        with open(self.cache_filename(), encoding="utf-8", errors="replace", newline="") as f:
            return _split_lines(f.read())

    def _write_to_disk(self, rules: list[str]) -> None:
        fd, tmp_name = tempfile.mkstemp(prefix="routedns", dir=self.cache_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.writelines(rule + "\n" for rule in rules)
            os.replace(tmp_name, self.cache_filename())
        finally:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
"""Configuration file model and loader."""

from __future__ import annotations

import ipaddress
import os
import tomllib
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, fields
from typing import Any

from .acl import IPNetwork
from .base import IPAddress

_Converter = Callable[[Any, str], Any]

_INT = (-(2**63), 2**63 - 1)
_UINT = (0, 2**64 - 1)
_UINT32 = (0, 2**32 - 1)
_UINT16 = (0, 2**16 - 1)
_UINT8 = (0, 2**8 - 1)


def _as_str(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{where}: expected a string, got {type(value).__name__}")
    return value


def _as_bool(value: Any, where: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{where}: expected a boolean, got {type(value).__name__}")
    return value


def _as_int(bounds: tuple[int, int]) -> _Converter:
    low, high = bounds

    def convert(value: Any, where: str) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{where}: expected an integer, got {type(value).__name__}")
        if not low <= value <= high:
            raise ValueError(f"{where}: value {value} out of range {low}..{high}")
        return value

    return convert


def _as_list(value: Any, where: str) -> list:
    if not isinstance(value, list):
        raise ValueError(f"{where}: expected an array, got {type(value).__name__}")
    return value


def _as_str_list(value: Any, where: str) -> list[str]:
    return [_as_str(item, f"{where}[{i}]") for i, item in enumerate(_as_list(value, where))]


def _as_ip(value: Any, where: str) -> IPAddress | None:
    text = _as_str(value, where)
    if not text:
        return None
    try:
        return ipaddress.ip_address(text)
    except ValueError as exc:
        raise ValueError(f"{where}: invalid IP address '{text}'") from exc


def _as_bytes(value: Any, where: str) -> bytes:
    byte = _as_int(_UINT8)
    return bytes(byte(item, f"{where}[{i}]") for i, item in enumerate(_as_list(value, where)))


def _as_table_dict(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"{where}: expected a table, got {type(value).__name__}")
    return value


def _as_tables(value: Any, where: str) -> list[dict[str, Any]]:
    return [dict(_as_table_dict(item, f"{where}[{i}]")) for i, item in enumerate(_as_list(value, where))]


def _lookup(table: dict[str, Any], key: str) -> tuple[bool, Any]:
    if key in table:
        return True, table[key]
    wanted = key.lower()
    for k, v in table.items():
        if k.lower() == wanted:
            return True, v
    return False, None


def _nested_string(key: str) -> _Converter:
    def convert(value: Any, where: str) -> str:
        found, raw = _lookup(_as_table_dict(value, where), key)
        return _as_str(raw, f"{where}.{key}") if found else ""

    return convert


def _table(cls: type) -> _Converter:
    return lambda value, where: _decode(cls, value, where)


def _table_list(cls: type) -> _Converter:
    return lambda value, where: [
        _decode(cls, item, f"{where}[{i}]") for i, item in enumerate(_as_list(value, where))
    ]


def _table_map(cls: type) -> _Converter:
    return lambda value, where: {
        name: _decode(cls, item, f"{where}.{name}")
        for name, item in _as_table_dict(value, where).items()
    }


def _opt(convert: _Converter, default: Any = None, key: str | None = None, factory: Callable | None = None):
    metadata = {"convert": convert, "key": key}
    if factory is not None:
        return field(default_factory=factory, metadata=metadata)
    return field(default=default, metadata=metadata)


def _text(key: str | None = None):
    return _opt(_as_str, "", key)


def _flag(key: str | None = None):
    return _opt(_as_bool, False, key)


def _number(bounds: tuple[int, int], key: str | None = None):
    return _opt(_as_int(bounds), 0, key)


def _strings(key: str | None = None):
    return _opt(_as_str_list, key=key, factory=list)


def _decode(cls: type, table: Any, where: str):
    """Build a dataclass from a TOML table; keys match case-insensitively, unknown keys are ignored."""
    table = _as_table_dict(table, where)
    values = {}
    for f in fields(cls):
        key = f.metadata["key"] or f.name
        found, raw = _lookup(table, key)
        if found:
            values[f.name] = f.metadata["convert"](raw, f"{where}.{key}")
    return cls(**values)


@dataclass
class ListConfig:
    """A block- or allowlist source."""

    name: str = _text()
    format: str = _text()
    source: str = _text()
    cache_dir: str = _text("cache-dir")


@dataclass
class RouteConfig:
    """One route of a router."""

    type: str = _text()
    types: list[str] = _strings()
    class_: str = _text("class")
    name: str = _text()
    source: str = _text()
    weekdays: list[str] = _strings()
    after: str = _text()
    before: str = _text()
    invert: bool = _flag()
    doh_path: str = _text("doh-path")
    resolver: str = _text()


@dataclass
class RouterConfig:
    """A router: an ordered list of routes."""

    routes: list[RouteConfig] = _opt(_table_list(RouteConfig), factory=list)


@dataclass
class ResolverConfig:
    """An upstream resolver."""

    address: str = _text()
    protocol: str = _text()
    transport: str = _text()
    doh_method: str = _opt(_nested_string("method"), "", "doh")
    ca: str = _text()
    client_key: str = _text("client-key")
    client_crt: str = _text("client-crt")
    bootstrap_address: str = _text("bootstrap-address")
    local_address: str = _text("local-address")
    edns0_udp_size: int = _number(_UINT16, "edns0-udp-size")


@dataclass
class ListenerConfig:
    """A listener accepting queries from clients."""

    address: str = _text()
    protocol: str = _text()
    transport: str = _text()
    resolver: str = _text()
    ca: str = _text()
    server_key: str = _text("server-key")
    server_crt: str = _text("server-crt")
    mutual_tls: bool = _flag("mutual-tls")
    allowed_net: list[str] = _strings("allowed-net")
    trusted_proxy: str = _opt(_nested_string("trusted-proxy"), "", "frontend")


@dataclass
class GroupConfig:
    """A group or modifier wrapping other resolvers."""

    resolvers: list[str] = _strings()
    type: str = _text()
    replace: list[dict[str, Any]] = _opt(_as_tables, factory=list)
    gc_period: int = _number(_INT, "gc-period")
    ecs_op: str = _text("ecs-op")
    ecs_address: IPAddress | None = _opt(_as_ip, None, "ecs-address")
    ecs_prefix4: int = _number(_UINT8, "ecs-prefix4")
    ecs_prefix6: int = _number(_UINT8, "ecs-prefix6")
    ttl_min: int = _number(_UINT32, "ttl-min")
    ttl_max: int = _number(_UINT32, "ttl-max")
    edns0_op: str = _text("edns0-op")
    edns0_code: int = _number(_UINT16, "edns0-code")
    edns0_data: bytes = _opt(_as_bytes, b"", "edns0-data")

    reset_after: int = _number(_INT, "reset-after")
    servfail_error: bool = _flag("servfail-error")

    cache_size: int = _number(_INT, "cache-size")
    cache_negative_ttl: int = _number(_UINT32, "cache-negative-ttl")
    cache_answer_shuffle: str = _text("cache-answer-shuffle")
    cache_harden_below_nxdomain: bool = _flag("cache-harden-below-nxdomain")
    cache_flush_query: str = _text("cache-flush-query")

    blocklist: list[str] = _strings()
    format: str = _text()
    source: str = _text()
    refresh: int = _number(_INT)

    filter: bool = _flag()
    blocklist_resolver: str = _text("blocklist-resolver")
    allowlist_resolver: str = _text("allowlist-resolver")
    blocklist_format: str = _text("blocklist-format")
    blocklist_source: list[ListConfig] = _opt(_table_list(ListConfig), key="blocklist-source", factory=list)
    blocklist_refresh: int = _number(_INT, "blocklist-refresh")
    allowlist: list[str] = _strings()
    allowlist_format: str = _text("allowlist-format")
    allowlist_source: list[ListConfig] = _opt(_table_list(ListConfig), key="allowlist-source", factory=list)
    allowlist_refresh: int = _number(_INT, "allowlist-refresh")
    location_db: str = _text("location-db")

    answer: list[str] = _strings()
    ns: list[str] = _strings()
    extra: list[str] = _strings()
    rcode: int = _number(_INT)
    truncate: bool = _flag()

    requests: int = _number(_UINT)
    window: int = _number(_UINT)
    prefix4: int = _number(_UINT8)
    prefix6: int = _number(_UINT8)
    limit_resolver: str = _text("limit-resolver")

    port: int = _number(_INT)
    wait_all: bool = _flag("wait-all")
    success_ttl_min: int = _number(_UINT32, "success-ttl-min")

    null_rcode: int = _number(_INT, "null-rcode")

    retry_resolver: str = _text("retry-resolver")

    network: str = _text()
    address: str = _text()
    priority: str = _text()
    tag: str = _text()
    log_request: bool = _flag("log-request")
    log_response: bool = _flag("log-response")
    verbose: bool = _flag()


@dataclass
class Config:
    """The whole configuration: listeners, resolvers, groups and routers by ID."""

    title: str = _text()
    bootstrap_resolver: ResolverConfig = _opt(_table(ResolverConfig), key="bootstrap-resolver", factory=ResolverConfig)
    listeners: dict[str, ListenerConfig] = _opt(_table_map(ListenerConfig), factory=dict)
    resolvers: dict[str, ResolverConfig] = _opt(_table_map(ResolverConfig), factory=dict)
    groups: dict[str, GroupConfig] = _opt(_table_map(GroupConfig), factory=dict)
    routers: dict[str, RouterConfig] = _opt(_table_map(RouterConfig), factory=dict)


def load_config(*args: str | os.PathLike) -> Config:
    """Read one or more TOML files, joined into one document, and decode them."""
    chunks = []
    for name in args:
        with open(name, encoding="utf-8") as f:
            chunks.append(f.read())
        chunks.append("\n")
    data = tomllib.loads("".join(chunks))
    return _decode(Config, data, "config")


def parse_cidr_list(networks: Iterable[str]) -> list[IPNetwork]:
    """Parse networks in CIDR notation; host bits are masked off."""
    out: list[IPNetwork] = []
    for text in networks:
        if "/" not in text:
            raise ValueError(f"invalid CIDR address: {text}")
        try:
            out.append(ipaddress.ip_network(text, strict=False))
        except ValueError as exc:
            raise ValueError(f"invalid CIDR address: {text}") from exc
    return out
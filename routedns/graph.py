"""Dependency graph of configured resolvers, groups and routers."""

from __future__ import annotations

from .config import Config


class DependencyError(ValueError):
    """The configuration's resolvers, groups and routers do not form a valid graph."""


def dependency_edges(config: Config) -> dict[str, list[str]]:
    """Map each group and router ID to the IDs it depends on.

    Empty references are left out; a router lists each resolver only once.
    """
    edges: dict[str, list[str]] = {}
    for group_id, group in config.groups.items():
        deps = [
            *group.resolvers,
            group.allowlist_resolver,
            group.blocklist_resolver,
            group.limit_resolver,
            group.retry_resolver,
        ]
        edges.setdefault(group_id, []).extend(d for d in deps if d)
    for router_id, router in config.routers.items():
        deps = dict.fromkeys(route.resolver for route in router.routes)
        edges.setdefault(router_id, []).extend(d for d in deps if d)
    return edges


def _vertices(config: Config) -> set[str]:
    ids: set[str] = set()
    for mapping in (config.resolvers, config.groups, config.routers):
        for node_id in mapping:
            if node_id in ids:
                raise DependencyError(f"duplicate ID '{node_id}'")
            ids.add(node_id)
    return ids


def instantiation_order(config: Config) -> list[str]:
    """Return all resolver, group and router IDs so that dependencies come first.

    Raises DependencyError for duplicate IDs, references to unknown IDs,
    self-references, repeated references and dependency loops.
    """
    ids = _vertices(config)
    remaining: dict[str, set[str]] = {node_id: set() for node_id in ids}
    for src, deps in dependency_edges(config).items():
        for dst in deps:
            if dst == src:
                raise DependencyError(f"'{src}' references itself")
            if dst not in ids:
                raise DependencyError(f"'{src}' references unknown ID '{dst}'")
            if dst in remaining[src]:
                raise DependencyError(f"edge between '{src}' and '{dst}' already exists")
            remaining[src].add(dst)

    order: list[str] = []
    while remaining:
        leaves = sorted(node_id for node_id, deps in remaining.items() if not deps)
        if not leaves:
            involved = ", ".join(sorted(remaining))
            raise DependencyError(f"dependency loop between: {involved}")
        order.extend(leaves)
        for leaf in leaves:
            del remaining[leaf]
        for deps in remaining.values():
            deps.difference_update(leaves)
    return order
# routedns

Building blocks for a configurable DNS stub resolver and proxy. A query, held
as a `dns.message.Message` from dnspython, is passed through a chain of
resolvers; each one can inspect, answer, modify or forward it.

## What is included

- **Common interfaces** (`routedns.base`): the abstract `Resolver`,
  `BlocklistDB`, `IPBlocklistDB` and `BlocklistLoader` classes, the
  `Question`, `ClientInfo` and `BlocklistMatch` value types, and
  `question_of(msg)`, which returns the first question of a message.
- **Name blocklist resolver** (`routedns.blocklist.Blocklist`): answers
  matching queries with NXDOMAIN or a spoofed A/AAAA record (TTL 3600),
  answers PTR queries from a matching hosts entry, or forwards matches to a
  `blocklist_resolver`. An optional `allowlist_db` overrides the blocklist
  and forwards to `allowlist_resolver` or the upstream resolver. With
  `blocklist_refresh` / `allowlist_refresh` (seconds) the databases are
  reloaded in a background thread; `close()` stops it. Counts of allowed and
  blocked queries are kept in `metrics`.
- **Rule databases**:
  - `routedns.regexp_db.RegexpDB` - one regular expression per line; empty
    lines and lines starting with `#` are skipped.
  - `routedns.domain_db.DomainDB` - `domain.com` matches only that name,
    `.domain.com` matches the name and all subdomains, `*.domain.com`
    matches subdomains only. A `*` anywhere else raises `ValueError`.
  - `routedns.hosts_db.HostsDB` - hosts-file lines; `0.0.0.0` and `::`
    block, other addresses become spoofed answers, and a PTR map is built
    from the same entries.
  - `routedns.multi_db.MultiDB` - several databases queried in order; the
    first match wins.
- **Rule loaders** (`routedns.loaders`): `StaticLoader` for rules held in
  memory, `FileLoader` for local files and `HTTPLoader` for remote lists.
  Given a `cache_dir`, `HTTPLoader` stores each successful download under the
  SHA-256 of the URL (`cache_filename()`) and serves its first load from that
  copy when one exists.
- **Cache** (`routedns.cache.Cache`): keeps answers for their lowest TTL and
  lowers TTLs as entries age. Options: `gc_period`, `capacity` (LRU limit,
  0 for none), `negative_ttl` (for answers without records, 60 by default;
  SERVFAIL is kept at most 300 seconds), `shuffle_answer`
  (`answer_shuffle_random` or `answer_shuffle_round_robin`),
  `harden_below_nxdomain` (RFC 8020) and `flush_query`. Truncated answers are
  not cached. `collect_garbage()` removes expired entries; a background
  thread calls it every `gc_period` seconds until `close()`. `min_ttl(msg)`
  is exported as well.
- **Drop resolver** (`routedns.drop.DropResolver`): returns `None`, meaning
  the query is to be dropped.
- **Access control** (`routedns.acl.is_allowed`): checks a client address
  against a list of networks; an empty list allows everyone.
- **Client address behind a proxy**
  (`routedns.client_address.extract_client_address`): takes the last
  `X-Forwarded-For` entry when the peer is in the trusted proxy network,
  ignoring invalid and loopback entries.
- **Configuration** (`routedns.config`): `load_config(*paths)` reads one or
  more TOML files, joined in the order given, into a `Config` with
  `listeners`, `resolvers`, `groups` and `routers`
  (`ListenerConfig`, `ResolverConfig`, `GroupConfig`, `RouterConfig`,
  `RouteConfig`, `ListConfig`). `parse_cidr_list` parses network lists.
- **Dependency checking** (`routedns.graph`): `dependency_edges(config)`
  lists what each group and router refers to, and
  `instantiation_order(config)` returns all IDs with dependencies first,
  raising `DependencyError` for duplicates, unknown or repeated references,
  self-references and loops.

## Example

```python
import dns.message
import dns.rcode

from routedns.base import ClientInfo, Resolver
from routedns.blocklist import Blocklist
from routedns.cache import Cache
from routedns.domain_db import DomainDB
from routedns.loaders import StaticLoader


class Upstream(Resolver):
    def resolve(self, q, ci):
        return dns.message.make_response(q)


blocklist_db = DomainDB("ads", StaticLoader([".ads.example.com", "*.tracking.example.com"]))
cache = Cache("cache", Upstream())
block = Blocklist("block", cache, blocklist_db=blocklist_db)

q = dns.message.make_query("x.ads.example.com.", "A")
assert block.resolve(q, ClientInfo()).rcode() == dns.rcode.NXDOMAIN
cache.close()
```

A configuration file describing such a chain:

```toml
[groups.cache]
type = "cache"
resolvers = ["upstream"]
cache-size = 1000

[groups.block]
type = "blocklist-v2"
resolvers = ["cache"]
blocklist-format = "domain"
blocklist = [".ads.example.com", "*.tracking.example.com"]
```

## What this package does not do

It has no command-line program and does not start a server: there are no
listeners and no upstream clients that send queries over the network. The
resolvers at the end of a chain are supplied by the user, as `Resolver`
subclasses. Configuration files can be loaded and their references checked
and ordered, but the package does not build a running resolver chain from
them, and it has no matcher for client-address (CIDR) lists.

## Installation

```
pip install .
```

## Running the tests

```
pip install .[test]
pytest
```
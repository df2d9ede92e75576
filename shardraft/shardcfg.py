"""Shard configurations: the assignment of shards to replica groups."""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Mapping

NSHARDS = 12
NUM_FIRST = 1
GID1 = 1

_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193

logger = logging.getLogger("shardraft.shardcfg")


class ConfigError(Exception):
    """Raised for an invalid configuration or an invalid change to one."""


def key2shard(key: str) -> int:
    """Return the shard a key belongs to (32-bit FNV-1a modulo NSHARDS)."""
    h = _FNV32_OFFSET
    for byte in key.encode("utf-8"):
        h ^= byte
        h = (h * _FNV32_PRIME) & 0xFFFFFFFF
    return h % NSHARDS


def _zero_shards() -> list[int]:
    return [0] * NSHARDS


@dataclass
class ShardConfig:
    """A numbered assignment of shards to groups, and of groups to servers."""

    num: int = 0
    shards: list[int] = field(default_factory=_zero_shards)
    groups: dict[int, list[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if len(self.shards) != NSHARDS:
            raise ConfigError(f"expected {NSHARDS} shards, got {len(self.shards)}")

    def __str__(self) -> str:
        groups = {str(gid): list(srvs) for gid, srvs in self.groups.items()}
        ordered = dict(sorted(groups.items()))
        return json.dumps(
            {"Num": self.num, "Shards": list(self.shards), "Groups": ordered},
            separators=(",", ":"),
        )

    def copy(self) -> ShardConfig:
        """Return a deep copy of this configuration."""
        return ShardConfig(
            num=self.num,
            shards=list(self.shards),
            groups={gid: list(srvs) for gid, srvs in self.groups.items()},
        )

    def _analyze(self) -> tuple[int, int, int, int]:
        """Return (most-loaded gid, its count, least-loaded gid, its count)."""
        counts = Counter(self.shards)
        most_n, most_g = -1, -1
        least_n, least_g = 257, -1
        for g in sorted(self.groups):
            if counts[g] < least_n:
                least_n, least_g = counts[g], g
            if counts[g] > most_n:
                most_n, most_g = counts[g], g
        return most_g, most_n, least_g, least_n

    def rebalance(self) -> None:
        """Balance the assignment of shards over the groups, in place."""
        if not self.groups:
            self.shards = _zero_shards()
            return

        for s, g in enumerate(list(self.shards)):
            if g not in self.groups:
                self.shards[s] = self._analyze()[2]

        while True:
            most_g, most_n, least_g, least_n = self._analyze()
            if most_n < least_n + 2:
                break
            self.shards[self.shards.index(most_g)] = least_g

    def join(self, servers: Mapping[int, Iterable[str]]) -> bool:
        """Add new groups; return False if one of them is already present."""
        changed = False
        for gid, srvs in servers.items():
            srv_list = list(srvs)
            if gid in self.groups:
                logger.warning("re-Join %s", gid)
                return False
            for xgid, xservers in self.groups.items():
                for s1 in xservers:
                    if s1 in srv_list:
                        raise ConfigError(
                            f"Join({gid}) puts server {s1} in groups {xgid} and {gid}"
                        )
            self.groups[gid] = srv_list
            changed = True
        if not changed:
            raise ConfigError("Join but no change")
        self.num += 1
        return True

    def leave(self, gids: Iterable[int]) -> bool:
        """Remove groups; return False if one of them is not present."""
        changed = False
        for gid in gids:
            if gid not in self.groups:
                logger.warning("Leave(%s) but not in config", gid)
                return False
            del self.groups[gid]
            changed = True
        if not changed:
            raise ConfigError("Leave but no change")
        self.num += 1
        return True

    def join_balance(self, servers: Mapping[int, Iterable[str]]) -> bool:
        """Join the groups and then rebalance."""
        if not self.join(servers):
            return False
        self.rebalance()
        return True

    def leave_balance(self, gids: Iterable[int]) -> bool:
        """Remove the groups and then rebalance."""
        if not self.leave(gids):
            return False
        self.rebalance()
        return True

    def gid_servers(self, shard: int) -> tuple[int, list[str] | None]:
        """Return the gid owning ``shard`` and its servers (None if unknown)."""
        gid = self.shards[shard]
        return gid, self.groups.get(gid)

    def is_member(self, gid: int) -> bool:
        """Return whether ``gid`` owns at least one shard."""
        return gid in self.shards

    def check_config(self, groups: Iterable[int]) -> None:
        """Raise ConfigError unless exactly ``groups`` exist and shards are balanced."""
        groups = list(groups)
        if len(self.groups) != len(groups):
            raise ConfigError(f"wanted {len(groups)} groups, got {len(self.groups)}")

        for g in groups:
            if g not in self.groups:
                raise ConfigError(f"missing group {g}")

        if groups:
            for s, g in enumerate(self.shards):
                if g not in self.groups:
                    raise ConfigError(f"shard {s} -> invalid group {g}")

        counts = Counter(self.shards)
        lo, hi = 257, 0
        for g in self.groups:
            hi = max(hi, counts[g])
            lo = min(lo, counts[g])
        if hi > lo + 1:
            raise ConfigError(f"max {hi} too much larger than min {lo}")


def from_string(s: str) -> ShardConfig:
    """Parse a configuration from its JSON form."""
    try:
        data = json.loads(s)
        num = int(data.get("Num") or 0)
        shards = [int(g) for g in (data.get("Shards") or [])][:NSHARDS]
        shards += [0] * (NSHARDS - len(shards))
        groups = {
            int(gid): [str(x) for x in (srvs or [])]
            for gid, srvs in (data.get("Groups") or {}).items()
        }
    except (ValueError, TypeError, AttributeError) as exc:
        raise ConfigError(f"Unmarshall err {exc}") from exc
    return ShardConfig(num=num, shards=shards, groups=groups)
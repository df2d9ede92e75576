"""Raft consensus peer, shard configuration balancing and test-run annotations."""

__version__ = "0.1.0"

__all__ = [
    "annotation",
    "election",
    "persister",
    "raft",
    "raftapi",
    "replication",
    "shardcfg",
    "state",
]
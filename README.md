# shardraft

Building blocks for a replicated, sharded key/value service:

- **`shardraft.raft`**: `Raft`, a consensus peer with leader election, log
  replication and commit tracking, and `make(peers, me, persister, apply_ch)`,
  which creates a peer and starts its background threads.
- **`shardraft.raftapi`**: the abstract `RaftPeer` interface (`start`,
  `get_state`, `snapshot`, `persist_bytes`, `kill`) and the frozen `ApplyMsg`
  record.
- **`shardraft.election`**: `RequestVoteArgs`, `RequestVoteReply` and
  `ElectionMixin.request_vote`.
- **`shardraft.replication`**: `AppendEntriesArgs`, `AppendEntriesReply` and
  `ReplicationMixin.append_entries`. A follower that rejects entries returns
  the conflicting term, the first index of that term and its log length, so
  the leader can back up over a whole term at once.
- **`shardraft.state`**: the `State` enum (`LEADER`, `FOLLOWER`, `CANDIDATE`),
  the `LogEntry` record and `dprintf`, a debug logger that is silent unless
  `state.DEBUG` is true.
- **`shardraft.persister`**: `Persister`, an in-memory, thread-safe store that
  saves Raft state and a service snapshot together in one step.
- **`shardraft.shardcfg`**: `ShardConfig`, which assigns `NSHARDS` (12) shards
  to replica groups, with `key2shard` (32-bit FNV-1a modulo 12) and a JSON
  round trip through `str(config)` and `from_string`.
- **`shardraft.annotation`**: a timeline of point, interval and continuous
  annotations (checker results, partitions, crashes) recorded during a test
  run.

No third-party packages are needed at runtime.

## Installation

```
pip install .
```

To run the test suite:

```
pip install .[test]
pytest
```

## Shard configurations

```python
from shardraft.shardcfg import ShardConfig, key2shard, from_string

cfg = ShardConfig()
cfg.join_balance({1: ["x", "y", "z"]})
cfg.join_balance({2: ["a", "b", "c"]})
cfg.check_config([1, 2])          # raises ConfigError if unbalanced or inconsistent

shard = key2shard("some-key")
gid, servers = cfg.gid_servers(shard)   # servers is None for an unknown gid

restored = from_string(str(cfg))  # JSON round trip
assert restored.is_member(gid)

cfg.leave_balance([1])
cfg.check_config([2])
```

Each successful `join` or `leave` increments `num`. `join` returns `False` if a
group is already present and raises `ConfigError` if a server would belong to
two groups; `leave` returns `False` if a group is absent. `rebalance` first
gives unassigned shards to the least-loaded group, then moves shards one at a
time from the most-loaded group to the least-loaded one until their counts
differ by at most one. Groups are considered in ascending id order, so the
result is deterministic. With no groups, every shard is assigned to gid 0.

## Persistence

```python
from shardraft.persister import Persister

store = Persister()
store.save(b"raft-state", b"snapshot")
assert store.read_raft_state() == b"raft-state"
assert store.snapshot_size() == len(b"snapshot")

fresh = store.copy()              # independent store with the same contents
```

`None` is stored as empty bytes.

## Raft peers

`make(peers, me, persister, apply_ch)` expects:

- `peers`: one endpoint per peer, this one included, in the same order on
  every peer. An endpoint has `call(method, args)` and returns the reply, or
  `None` if the request or the reply was lost. The methods called are
  `"Raft.RequestVote"` (handled by `request_vote`) and `"Raft.AppendEntries"`
  (handled by `append_entries`).
- `apply_ch`: any object with `put(msg)`, for example a `queue.Queue`.
  Committed commands arrive in order as `ApplyMsg(command_valid=True, ...)`.

A peer exposes:

- `start(command)`: appends a command if this peer is the leader and returns
  `(index, term, True)`. Otherwise it returns `(-1, -1, False)`.
- `get_state()`: returns `(current_term, is_leader)`.
- `persist_bytes()`: returns the size of the persister's Raft state.
- `kill()` / `killed()`: stop the peer's ticker and applier threads.

Election timeouts are drawn at random from 175 to 324 ms. A leader sends
heartbeats about every 100 ms; the ticker wakes every 15 ms.

When a peer is created, it restores its term, vote and log from the
persister's Raft state if that state is non-empty. It raises `RuntimeError` if
the state cannot be decoded.

## Annotations

Call `annotate_test(description, nservers)` first. It resets the recorder and
sets up the connectivity and crash tracking. The checker, connection,
shutdown and restart functions raise `RuntimeError` until it has been called.
`finalize_annotations(end)` returns every record as a list of
`AnnotationRecord`, closing any open continuous spans and adding a final
marker.

## What this package does not do

- There is no network transport and no simulated network. Endpoints passed to
  `make` must be supplied by the caller.
- A `Raft` peer does not write its term, vote or log back to the persister
  while it runs. It only reads them at creation.
- `Raft.snapshot` accepts a snapshot but does not trim the log. No snapshots
  are sent to followers or delivered on the apply channel.
- There is no key/value server, client, shard controller or shard migration.
  `ShardConfig` only computes configurations.
- Annotations are kept in memory and returned as records. Nothing is drawn or
  written to a file.
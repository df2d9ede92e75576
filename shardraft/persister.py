"""Storage for a peer's persisted Raft state and service snapshot."""

from __future__ import annotations

import threading


def _as_bytes(data: bytes | bytearray | memoryview | None) -> bytes:
    """Return an immutable copy of ``data``, treating ``None`` as empty."""
    if data is None:
        return b""
    return bytes(data)


class Persister:
    """Thread-safe holder of the Raft state and the snapshot.

    Both are stored and returned as immutable ``bytes``, so callers can
    never alias the stored state.
    """

    def __init__(self, raftstate: bytes | None = None, snapshot: bytes | None = None) -> None:
        self._lock = threading.Lock()
        self._raftstate = _as_bytes(raftstate)
        self._snapshot = _as_bytes(snapshot)

    def copy(self) -> Persister:
        """Return a new persister holding the same state as this one."""
        with self._lock:
            return Persister(self._raftstate, self._snapshot)

    def read_raft_state(self) -> bytes:
        """Return the saved Raft state."""
        with self._lock:
            return self._raftstate

    def raft_state_size(self) -> int:
        """Return the size in bytes of the saved Raft state."""
        with self._lock:
            return len(self._raftstate)

    def save(self, raftstate: bytes | None, snapshot: bytes | None) -> None:
        """Save Raft state and snapshot together as one atomic action."""
        raft_bytes = _as_bytes(raftstate)
        snap_bytes = _as_bytes(snapshot)
        with self._lock:
            self._raftstate = raft_bytes
            self._snapshot = snap_bytes

    def read_snapshot(self) -> bytes:
        """Return the saved snapshot."""
        with self._lock:
            return self._snapshot

    def snapshot_size(self) -> int:
        """Return the size in bytes of the saved snapshot."""
        with self._lock:
            return len(self._snapshot)
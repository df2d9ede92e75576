"""A single Raft peer: roles, log, commitment, the applier and the ticker."""

from __future__ import annotations

import pickle
import random
import threading
import time
from typing import Any, Protocol, Sequence

from .election import ElectionMixin
from .persister import Persister
from .raftapi import ApplyMsg, RaftPeer
from .replication import ReplicationMixin
from .state import LogEntry, State, dprintf

_TICK = 0.015
_HEARTBEAT_INTERVAL = 0.1
_ELECTION_TIMEOUT_MIN_MS = 175
_ELECTION_TIMEOUT_SPREAD_MS = 150

_DECODE_ERRORS = (
    pickle.UnpicklingError,
    EOFError,
    ValueError,
    TypeError,
    AttributeError,
    ImportError,
    IndexError,
    KeyError,
)


class _Endpoint(Protocol):
    def call(self, method: str, args: Any) -> Any: ...


class _ApplySink(Protocol):
    def put(self, item: ApplyMsg) -> None: ...


class Raft(ElectionMixin, ReplicationMixin, RaftPeer):
    """One Raft peer.

    ``peers`` holds an endpoint for every peer, this one included, in the
    same order on every peer. Committed commands are delivered as
    ``ApplyMsg`` values through ``apply_ch.put``. Construction does not
    start any background work; ``make`` does.
    """

    def __init__(
        self,
        peers: Sequence[_Endpoint],
        me: int,
        persister: Persister,
        apply_ch: _ApplySink,
    ) -> None:
        self._mu = threading.Lock()
        self._apply_cond = threading.Condition(self._mu)
        self._dead = threading.Event()
        self.peers = list(peers)
        self.persister = persister
        self.me = me
        self.apply_ch = apply_ch

        self.current_term = 0
        self.voted_for = -1
        self.log: list[LogEntry] = [LogEntry(term=0, index=0)]
        self.state = State.FOLLOWER
        self.commit_index = 0
        self.last_applied = 0
        self.next_index: list[int] = []
        self.match_index: list[int] = []
        self.votes_received = 0

        self._heartbeats_time = _HEARTBEAT_INTERVAL
        self._election_deadline = 0.0
        self._heartbeats_deadline = 0.0
        self._reset_election_timeouts()

        self._read_persist(persister.read_raft_state())
        dprintf("server %d initialized", self.me)

    # -- public interface -------------------------------------------------

    def get_state(self) -> tuple[int, bool]:
        """Return the current term and whether this peer believes it leads."""
        with self._mu:
            return self.current_term, self.state == State.LEADER

    def persist_bytes(self) -> int:
        """Return the size in bytes of the persisted Raft state."""
        with self._mu:
            return self.persister.raft_state_size()

    def snapshot(self, index: int, snapshot: bytes) -> None:
        """Accept a service snapshot through ``index``.

        This peer keeps its whole log, so the snapshot does not trim it.
        """
        dprintf("%d given snapshot through index %d (%d bytes)", self.me, index, len(snapshot))

    def start(self, command: Any) -> tuple[int, int, bool]:
        """Append ``command`` if leader; return (index, term, is_leader)."""
        with self._mu:
            if self.state != State.LEADER:
                return -1, -1, False
            dprintf("leader %d term %d received command %r", self.me, self.current_term, command)
            term = self.current_term
            index = len(self.log)
            self.log.append(LogEntry(term=term, command=command, index=index))
            self._send_logs(False)
            return index, term, True

    def kill(self) -> None:
        """Stop the peer's background work."""
        self._dead.set()
        with self._mu:
            self._apply_cond.notify_all()

    def killed(self) -> bool:
        """Return whether ``kill`` has been called."""
        return self._dead.is_set()

    # -- role changes (caller holds _mu) ----------------------------------

    def _become_follower(self, term: int) -> None:
        self.current_term = term
        self.voted_for = -1
        dprintf("%d become Follower from %s", self.me, self.state)
        self.state = State.FOLLOWER

    def _become_candidate(self) -> None:
        dprintf("%d become Candidate from %s", self.me, self.state)
        self.state = State.CANDIDATE
        self.current_term += 1
        self.voted_for = self.me
        self.votes_received = 1

    def _become_leader(self) -> None:
        if self.state == State.LEADER:
            return
        self.state = State.LEADER
        self.next_index = [len(self.log)] * len(self.peers)
        self.match_index = [0] * len(self.peers)
        dprintf("%d become leader, term %d", self.me, self.current_term)
        self._send_logs(True)

    # -- timers (caller holds _mu) ----------------------------------------

    def _reset_election_timeouts(self) -> None:
        timeout_ms = _ELECTION_TIMEOUT_MIN_MS + random.randrange(_ELECTION_TIMEOUT_SPREAD_MS)
        self._election_deadline = time.monotonic() + timeout_ms / 1000

    def _reset_heartbeats_timeouts(self) -> None:
        self._heartbeats_deadline = time.monotonic() + self._heartbeats_time

    def _is_election_timeout(self) -> bool:
        return time.monotonic() > self._election_deadline

    def _is_heartbeats_timeout(self) -> bool:
        return time.monotonic() > self._heartbeats_deadline

    # -- persistence ------------------------------------------------------

    def _persist(self) -> None:
        """Save term, vote and log to the persister; caller holds ``_mu``."""
        state = pickle.dumps((self.current_term, self.voted_for, list(self.log)))
        self.persister.save(state, None)

    def _read_persist(self, data: bytes | None) -> None:
        """Restore term, vote and log saved before a crash, if any."""
        if not data:
            return
        try:
            current_term, voted_for, log = pickle.loads(data)
            if not isinstance(current_term, int) or not isinstance(voted_for, int):
                raise TypeError("term and vote must be integers")
            log = list(log)
            if not log or not all(isinstance(e, LogEntry) for e in log):
                raise TypeError("log must be a non-empty list of entries")
        except _DECODE_ERRORS as exc:
            raise RuntimeError("error when read persist") from exc
        self.current_term = current_term
        self.voted_for = voted_for
        self.log = log

    # -- commitment and application ---------------------------------------

    def _leader_commit(self) -> None:
        """Advance commit_index to the newest entry of this term on a majority."""
        if self.state != State.LEADER:
            return
        for i in range(len(self.log) - 1, self.commit_index, -1):
            if self.log[i].term != self.current_term:
                continue
            count = 1 + sum(
                1
                for server in range(len(self.peers))
                if server != self.me and self.match_index[server] >= i
            )
            if count > len(self.peers) // 2:
                dprintf("log at index %d becomes new commitIndex", i)
                self.commit_index = i
                self._apply()
                return

    def _apply(self) -> None:
        """Wake the applier; caller holds ``_mu``."""
        self._apply_cond.notify_all()

    def _applier(self) -> None:
        with self._mu:
            while not self.killed():
                while self.commit_index > self.last_applied:
                    self.last_applied += 1
                    msg = ApplyMsg(
                        command_valid=True,
                        command=self.log[self.last_applied].command,
                        command_index=self.last_applied,
                    )
                    # Never hold the lock while handing a message to the service.
                    self._mu.release()
                    try:
                        self.apply_ch.put(msg)
                    finally:
                        self._mu.acquire()
                if self.killed():
                    return
                self._apply_cond.wait()

    def _ticker(self) -> None:
        while not self.killed():
            with self._mu:
                if self.state == State.LEADER:
                    if self._is_heartbeats_timeout():
                        self._send_logs(True)
                elif self._is_election_timeout():
                    self._start_election()
            time.sleep(_TICK)


def make(
    peers: Sequence[_Endpoint],
    me: int,
    persister: Persister,
    apply_ch: _ApplySink,
) -> Raft:
    """Create peer ``me`` of ``peers`` and start its ticker and applier."""
    raft = Raft(peers, me, persister, apply_ch)
    threading.Thread(target=raft._ticker, daemon=True, name=f"raft-{me}-ticker").start()
    threading.Thread(target=raft._applier, daemon=True, name=f"raft-{me}-applier").start()
    return raft
"""Log replication: the AppendEntries RPC and the leader's side of it.

``ReplicationMixin`` is meant to be mixed into a Raft peer. The host
class provides these attributes:

* ``_mu`` -- the lock guarding the peer's state
* ``me``, ``peers`` -- this peer's index and the peer endpoints; each
  endpoint has ``call(method, args)`` returning the reply, or ``None``
  when the request or reply was lost
* ``current_term``, ``log``, ``state``, ``commit_index``,
  ``next_index``, ``match_index``

and these methods, all called with ``_mu`` held:

* ``_become_follower(term)``
* ``_reset_election_timeouts()``, ``_reset_heartbeats_timeouts()``
* ``_apply()`` -- wake the applier after ``commit_index`` advanced
* ``_leader_commit()`` -- advance ``commit_index`` from ``match_index``
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable

from .state import LogEntry, State, dprintf

APPEND_ENTRIES = "Raft.AppendEntries"


def _spawn(target: Callable[..., Any], *args: Any) -> threading.Thread:
    thread = threading.Thread(target=target, args=args, daemon=True)
    thread.start()
    return thread


@dataclass(frozen=True)
class AppendEntriesArgs:
    """Arguments of an AppendEntries RPC; no entries means a heartbeat."""

    term: int
    leader_id: int
    prev_log_index: int
    prev_log_term: int
    entries: tuple[LogEntry, ...] = field(default_factory=tuple)
    leader_commit: int = 0


@dataclass
class AppendEntriesReply:
    """Reply to an AppendEntries RPC, with the hints for fast log backup."""

    term: int
    success: bool = False
    conflict: bool = False
    x_term: int = 0
    x_index: int = 0
    x_len: int = 0


class ReplicationMixin:
    """AppendEntries handling and sending for a Raft peer."""

    def append_entries(self, args: AppendEntriesArgs) -> AppendEntriesReply:
        """Handle entries (or a heartbeat) from a leader and return the reply."""
        with self._mu:
            dprintf("%d received AppendEntries from %d, has %d entries",
                    self.me, args.leader_id, len(args.entries))
            reply = AppendEntriesReply(term=self.current_term)
            if args.term < self.current_term:
                dprintf("%d rejects AppendEntries from %d: term %d < %d",
                        self.me, args.leader_id, args.term, self.current_term)
                return reply
            self._reset_election_timeouts()
            if args.term > self.current_term or (
                self.state == State.CANDIDATE and args.term == self.current_term
            ):
                self._become_follower(args.term)
            reply.term = self.current_term

            if len(self.log) <= args.prev_log_index:
                reply.conflict = True
                reply.x_index = -1
                reply.x_term = -1
                reply.x_len = len(self.log)
                return reply

            x_term = self.log[args.prev_log_index].term
            if x_term != args.prev_log_term:
                for index in range(args.prev_log_index, 0, -1):
                    if self.log[index - 1].term != x_term:
                        reply.x_index = index
                        break
                reply.conflict = True
                reply.x_term = x_term
                reply.x_len = len(self.log)
                return reply

            self._append_logs(args)
            if self.commit_index < args.leader_commit:
                self.commit_index = min(args.leader_commit, len(self.log) - 1)
                dprintf("%d updated commitIndex to %d", self.me, self.commit_index)
                self._apply()
            reply.success = True
            return reply

    def _append_logs(self, args: AppendEntriesArgs) -> None:
        """Merge the leader's entries into the log, truncating at a conflict."""
        for offset, entry in enumerate(args.entries):
            log_index = args.prev_log_index + 1 + offset
            if log_index >= len(self.log):
                self.log.extend(args.entries[offset:])
                return
            if self.log[log_index].term != entry.term:
                del self.log[log_index:]
                self.log.extend(args.entries[offset:])
                return

    def _build_args(self, server: int) -> AppendEntriesArgs:
        """Build the AppendEntries arguments for ``server``; hold ``_mu``."""
        next_index = self.next_index[server]
        prev = next_index - 1
        return AppendEntriesArgs(
            term=self.current_term,
            leader_id=self.me,
            prev_log_index=prev,
            prev_log_term=self.log[prev].term,
            entries=tuple(self.log[next_index:]),
            leader_commit=self.commit_index,
        )

    def _send_logs(self, is_heartbeat: bool) -> None:
        """Send entries (or heartbeats) to every other peer; hold ``_mu``."""
        if self.state != State.LEADER:
            return
        dprintf("%d send logs, term %d, heartbeat %s", self.me, self.current_term, is_heartbeat)
        last_index = len(self.log) - 1
        for server in range(len(self.peers)):
            if server == self.me:
                continue
            if last_index < self.next_index[server] and not is_heartbeat:
                continue
            _spawn(self._send_append_entries_to_server, server, self._build_args(server))
        self._reset_heartbeats_timeouts()

    def _send_append_entries_to_server(self, server: int, args: AppendEntriesArgs) -> None:
        dprintf("%d sending AppendEntries to %d, term %d, length %d",
                self.me, server, args.term, len(args.entries))
        reply = self.peers[server].call(APPEND_ENTRIES, args)
        if reply is None:
            dprintf("%d got no AppendEntries reply from %d", self.me, server)
            return
        with self._mu:
            if self.current_term != args.term or self.state != State.LEADER:
                return
            if reply.term > self.current_term:
                self._become_follower(reply.term)
                return
            if reply.success:
                match = args.prev_log_index + len(args.entries)
                self.next_index[server] = max(self.next_index[server], match + 1)
                self.match_index[server] = max(self.match_index[server], match)
                self._leader_commit()
            elif reply.conflict:
                if reply.x_term == -1:
                    self.next_index[server] = reply.x_len
                else:
                    last = self._find_last_term_index(reply.x_term)
                    if last == -1:
                        self.next_index[server] = reply.x_index
                    else:
                        self.next_index[server] = last + 1

    def _find_last_term_index(self, term: int) -> int:
        """Return the index of the last entry of ``term``, or -1 if none."""
        for index in range(len(self.log) - 1, -1, -1):
            if self.log[index].term == term:
                return index
        return -1
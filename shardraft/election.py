"""Leader election: the RequestVote RPC and the candidate's side of it.

``ElectionMixin`` is meant to be mixed into a Raft peer. The host class
provides these attributes:

* ``_mu`` -- the lock guarding the peer's state
* ``me``, ``peers`` -- this peer's index and the peer endpoints; each
  endpoint has ``call(method, args)`` returning the reply, or ``None``
  when the request or reply was lost
* ``current_term``, ``voted_for``, ``log``, ``state``, ``votes_received``

and these methods, all called with ``_mu`` held:

* ``_become_follower(term)``, ``_become_candidate()``, ``_become_leader()``
* ``_reset_election_timeouts()``
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable

from .state import State, dprintf

REQUEST_VOTE = "Raft.RequestVote"


def _spawn(target: Callable[..., Any], *args: Any) -> threading.Thread:
    thread = threading.Thread(target=target, args=args, daemon=True)
    thread.start()
    return thread


@dataclass(frozen=True)
class RequestVoteArgs:
    """Arguments of a RequestVote RPC."""

    term: int
    candidate_id: int
    last_log_index: int
    last_log_term: int


@dataclass(frozen=True)
class RequestVoteReply:
    """Reply to a RequestVote RPC."""

    term: int
    vote_granted: bool = False


class ElectionMixin:
    """Vote handling and election start-up for a Raft peer."""

    def request_vote(self, args: RequestVoteArgs) -> RequestVoteReply:
        """Handle a vote request from a candidate and return the reply."""
        with self._mu:
            dprintf(
                "%d receiving request vote from %d, term %d, current term %d, voted for %d",
                self.me, args.candidate_id, args.term, self.current_term, self.voted_for,
            )
            if args.term < self.current_term:
                dprintf("%d declined vote for %d: stale term %d < %d",
                        self.me, args.candidate_id, args.term, self.current_term)
                return RequestVoteReply(term=self.current_term, vote_granted=False)
            if (
                args.term == self.current_term
                and self.voted_for != -1
                and self.voted_for != args.candidate_id
            ):
                dprintf("%d declined vote for %d: already voted for %d",
                        self.me, args.candidate_id, self.voted_for)
                return RequestVoteReply(term=self.current_term, vote_granted=False)
            if args.term > self.current_term:
                self._become_follower(args.term)
            if not self._is_log_up_to_date(args.last_log_term, args.last_log_index):
                dprintf("%d declined vote for %d: candidate log not up-to-date",
                        self.me, args.candidate_id)
                return RequestVoteReply(term=self.current_term, vote_granted=False)
            self.voted_for = args.candidate_id
            self._reset_election_timeouts()
            dprintf("%d voted for %d in term %d", self.me, args.candidate_id, args.term)
            return RequestVoteReply(term=self.current_term, vote_granted=True)

    def _is_log_up_to_date(self, last_log_term: int, last_log_index: int) -> bool:
        my_last_term = self.log[-1].term
        if last_log_term > my_last_term:
            return True
        return last_log_term == my_last_term and last_log_index >= len(self.log) - 1

    def _start_election(self) -> None:
        """Become a candidate and ask every other peer for its vote; hold ``_mu``."""
        if self.state == State.LEADER:
            return
        self._become_candidate()
        self._reset_election_timeouts()
        dprintf("%d starting new election, term %d", self.me, self.current_term)
        args = RequestVoteArgs(
            term=self.current_term,
            candidate_id=self.me,
            last_log_index=len(self.log) - 1,
            last_log_term=self.log[-1].term,
        )
        majority = len(self.peers) // 2 + 1
        for server in range(len(self.peers)):
            if server != self.me:
                _spawn(self._send_request_vote_to_server, server, args, majority)

    def _send_request_vote_to_server(
        self, server: int, args: RequestVoteArgs, majority: int
    ) -> None:
        dprintf("%d sending vote request to %d, term %d", self.me, server, args.term)
        reply = self.peers[server].call(REQUEST_VOTE, args)
        if reply is None:
            dprintf("%d failed to receive vote reply from %d", self.me, server)
            return
        with self._mu:
            if self.current_term != args.term or self.state != State.CANDIDATE:
                return
            if reply.term > self.current_term:
                self._become_follower(reply.term)
                return
            if reply.vote_granted:
                self.votes_received += 1
                if self.votes_received >= majority:
                    self._become_leader()
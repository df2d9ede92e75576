"""The interface a Raft peer offers to its service, and the apply message."""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ApplyMsg:
    """A message a peer delivers to its service.

    ``command_valid`` marks a newly committed log entry; ``snapshot_valid``
    marks a snapshot to install.
    """

    command_valid: bool = False
    command: Any = None
    command_index: int = 0

    snapshot_valid: bool = False
    snapshot: bytes = b""
    snapshot_term: int = 0
    snapshot_index: int = 0


class RaftPeer(abc.ABC):
    """What a service or tester may ask of a Raft peer."""

    @abc.abstractmethod
    def start(self, command: Any) -> tuple[int, int, bool]:
        """Start agreement on ``command``; return (index, term, is_leader)."""

    @abc.abstractmethod
    def get_state(self) -> tuple[int, bool]:
        """Return (current term, whether this peer believes it is leader)."""

    @abc.abstractmethod
    def snapshot(self, index: int, snapshot: bytes) -> None:
        """Tell the peer the service snapshotted everything through ``index``."""

    @abc.abstractmethod
    def persist_bytes(self) -> int:
        """Return the size in bytes of the persisted Raft state."""

    @abc.abstractmethod
    def kill(self) -> None:
        """Ask the peer to stop its background work."""
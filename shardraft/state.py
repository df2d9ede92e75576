"""Peer roles, log entries and debug logging shared by the Raft modules."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any

DEBUG = False

logger = logging.getLogger("shardraft")


class State(str, enum.Enum):
    """The role a Raft peer currently plays."""

    LEADER = "Leader"
    FOLLOWER = "Follower"
    CANDIDATE = "Candidate"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class LogEntry:
    """One entry of the replicated log."""

    term: int
    command: Any = None
    index: int = 0


def dprintf(fmt: str, *args: Any) -> None:
    """Log a %-style debug message when ``DEBUG`` is on."""
    if DEBUG:
        logger.debug(fmt, *args)
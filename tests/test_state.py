import logging

from shardraft import state
from shardraft.state import LogEntry, State, dprintf


def test_state_values():
    assert State.LEADER.value == "Leader"
    assert State.FOLLOWER.value == "Follower"
    assert State.CANDIDATE.value == "Candidate"
    assert State("Candidate") is State.CANDIDATE
    assert str(State.FOLLOWER) == "Follower"


def test_log_entry_defaults_and_equality():
    entry = LogEntry(term=2)
    assert entry.command is None
    assert entry.index == 0
    assert LogEntry(2, "cmd", 5) == LogEntry(term=2, command="cmd", index=5)
    assert LogEntry(2, "cmd", 5) != LogEntry(3, "cmd", 5)


def test_dprintf_silent_when_disabled(caplog, monkeypatch):
    monkeypatch.setattr(state, "DEBUG", False)
    caplog.set_level(logging.DEBUG, logger="shardraft")
    dprintf("%d become leader, term %d", 1, 4)
    assert caplog.records == []


def test_dprintf_logs_when_enabled(caplog, monkeypatch):
    monkeypatch.setattr(state, "DEBUG", True)
    caplog.set_level(logging.DEBUG, logger="shardraft")
    dprintf("%d become leader, term %d", 1, 4)
    assert [r.getMessage() for r in caplog.records] == ["1 become leader, term 4"]
"""
Tests for the audit recorder.
"""

import pytest
from pydantic import ValidationError

from gamematch.services.audit_service import AuditRecorder
from conftest import T0


def test_record_appends_entries_in_order():
    recorder = AuditRecorder()
    recorder.record("player_added", {"player_id": "p1"}, now=T0)
    recorder.record("game_started", {"team_id": "t1"}, now=T0)

    entries = recorder.entries()

    assert [e.type for e in entries] == ["player_added", "game_started"]
    assert entries[0].payload == {"player_id": "p1"}
    assert entries[0].timestamp == T0
    assert len({e.id for e in entries}) == 2


def test_entries_are_frozen():
    recorder = AuditRecorder()
    entry = recorder.record("player_added", {"player_id": "p1"}, now=T0)
    with pytest.raises(ValidationError):
        entry.type = "changed"


def test_entries_returns_a_copy():
    recorder = AuditRecorder()
    recorder.record("player_added", now=T0)
    entries = recorder.entries()
    recorder.record("player_added", now=T0)
    assert len(entries) == 1
    assert len(recorder) == 2


def test_payload_is_copied():
    recorder = AuditRecorder()
    payload = {"player_id": "p1"}
    entry = recorder.record("player_added", payload, now=T0)
    payload["player_id"] = "p2"
    assert entry.payload == {"player_id": "p1"}


def test_clear():
    recorder = AuditRecorder()
    recorder.record("player_added", now=T0)
    recorder.clear()
    assert recorder.entries() == ()

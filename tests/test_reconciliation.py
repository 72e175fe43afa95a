"""
tests/test_reconciliation.py — Room Counter Reconciliation
===========================================================
"""

from __future__ import annotations

from sqlalchemy import update

from nodechat.database.engine import get_session
from nodechat.database.models import Room
from nodechat.services.identity_service import establish_session
from nodechat.services.message_service import post_message
from nodechat.services.reconciliation_service import reconcile_room_counters
from nodechat.services.room_service import find_room, resolve_room
from nodechat.services.transition_service import record_transition


def _seed(engine):
    user = establish_session(engine, "tok-ann", "ann")
    record_transition(engine, user.id, "lobby")
    record_transition(engine, user.id, "hall", from_key="lobby")
    record_transition(engine, user.id, "lobby", from_key="hall")
    post_message(engine, user.id, "lobby", "hi")
    post_message(engine, user.id, "lobby", "again")
    return user


class TestReconcileRoomCounters:
    def test_consistent_counters_untouched(self, db_engine):
        _seed(db_engine)
        result = reconcile_room_counters(db_engine)
        assert result["checked"] == 2
        assert result["corrected"] == 0
        assert result["corrections"] == []
        assert "timestamp" in result

    def test_drift_is_corrected(self, db_engine):
        _seed(db_engine)
        with get_session(db_engine) as session:
            session.execute(
                update(Room).where(Room.key == "lobby").values(visit_count=7, message_count=0)
            )

        result = reconcile_room_counters(db_engine)
        assert result["corrected"] == 2
        by_counter = {c["counter"]: c for c in result["corrections"]}
        assert by_counter["visit_count"]["stored"] == 7
        assert by_counter["visit_count"]["actual"] == 2
        assert by_counter["visit_count"]["diff"] == -5
        assert by_counter["message_count"]["actual"] == 2

        lobby = find_room(db_engine, "lobby")
        assert (lobby.visit_count, lobby.message_count) == (2, 2)

        assert reconcile_room_counters(db_engine)["corrected"] == 0

    def test_orphan_visit_from_failed_transition_write(self, db_engine):
        """A destination bump without its transition row is rolled back."""
        _seed(db_engine)
        resolve_room(db_engine, "hall", is_destination=True)
        assert find_room(db_engine, "hall").visit_count == 2

        result = reconcile_room_counters(db_engine)
        assert result["corrected"] == 1
        assert result["corrections"][0]["room_key"] == "hall"
        assert find_room(db_engine, "hall").visit_count == 1

    def test_room_without_log_rows_reads_zero(self, db_engine):
        resolve_room(db_engine, "empty", is_destination=True)
        result = reconcile_room_counters(db_engine)
        assert result["corrected"] == 1
        assert find_room(db_engine, "empty").visit_count == 0

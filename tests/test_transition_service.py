"""
tests/test_transition_service.py — Transition Log
==================================================
"""

from __future__ import annotations

import math

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from nodechat.database.models import Transition, TransitionType
from nodechat.services.identity_service import establish_session
from nodechat.services.room_service import find_room
from nodechat.services.transition_service import (
    DEFAULT_MAX_DWELL_SECONDS,
    clamp_dwell,
    record_transition,
)


def _user_transitions(engine, user_id: int) -> list[Transition]:
    with Session(engine) as session:
        return list(session.scalars(
            select(Transition).where(Transition.user_id == user_id).order_by(Transition.id)
        ))


@pytest.fixture
def user(db_engine):
    return establish_session(db_engine, "tok-ann", "ann")


# ---------------------------------------------------------------------------
# Dwell clamping
# ---------------------------------------------------------------------------
class TestClampDwell:
    @pytest.mark.parametrize("value, expected", [
        (0, 0.0),
        (42, 42.0),
        ("12.5", 12.5),
        (-5, 0.0),
        ("abc", 0.0),
        (None, 0.0),
        (True, 0.0),
        (math.nan, 0.0),
        (math.inf, 0.0),
        (10**9, DEFAULT_MAX_DWELL_SECONDS),
    ])
    def test_clamp(self, value, expected):
        assert clamp_dwell(value) == expected

    def test_custom_ceiling(self):
        assert clamp_dwell(500, max_seconds=300) == 300


# ---------------------------------------------------------------------------
# Type coercion
# ---------------------------------------------------------------------------
class TestTransitionTypeCoerce:
    def test_known_value(self):
        assert TransitionType.coerce("GO_COMMAND", has_source=True) is TransitionType.GO_COMMAND

    def test_case_insensitive(self):
        assert TransitionType.coerce("hot_room", has_source=True) is TransitionType.HOT_ROOM

    def test_unknown_becomes_other(self):
        assert TransitionType.coerce("TELEPORT", has_source=True) is TransitionType.OTHER

    def test_missing_first_entry_is_initial(self):
        assert TransitionType.coerce(None, has_source=False) is TransitionType.INITIAL

    def test_missing_move_is_other(self):
        assert TransitionType.coerce("", has_source=True) is TransitionType.OTHER


# ---------------------------------------------------------------------------
# record_transition
# ---------------------------------------------------------------------------
class TestRecordTransition:
    def test_first_entry_has_no_source(self, db_engine, user):
        t = record_transition(db_engine, user.id, "lobby")
        assert t is not None
        assert t.from_room_id is None
        assert t.to_room_id == find_room(db_engine, "lobby").id
        assert t.transition_type == "INITIAL"

    def test_chain_links_rooms(self, db_engine, user):
        record_transition(db_engine, user.id, "A")
        record_transition(db_engine, user.id, "B", from_key="A", transition_type="GO_COMMAND")
        record_transition(db_engine, user.id, "C", from_key="B", transition_type="RECOMMENDATION")

        a, b, c = (find_room(db_engine, k) for k in ("A", "B", "C"))
        log = _user_transitions(db_engine, user.id)

        assert [(t.from_room_id, t.to_room_id) for t in log] == [
            (None, a.id), (a.id, b.id), (b.id, c.id),
        ]
        assert [t.transition_type for t in log] == ["INITIAL", "GO_COMMAND", "RECOMMENDATION"]

    def test_source_resolution_does_not_count_visit(self, db_engine, user):
        record_transition(db_engine, user.id, "A")
        record_transition(db_engine, user.id, "B", from_key="A")
        assert find_room(db_engine, "A").visit_count == 1
        assert find_room(db_engine, "B").visit_count == 1

    def test_unknown_source_is_created_without_visit(self, db_engine, user):
        record_transition(db_engine, user.id, "B", from_key="ghost")
        assert find_room(db_engine, "ghost").visit_count == 0

    def test_destination_creator_is_mover(self, db_engine, user):
        record_transition(db_engine, user.id, "lobby")
        assert find_room(db_engine, "lobby").creator_id == user.id

    def test_dwell_is_clamped_on_write(self, db_engine, user):
        t = record_transition(db_engine, user.id, "lobby", duration_seconds=10**7)
        assert t.duration_seconds == DEFAULT_MAX_DWELL_SECONDS

        t = record_transition(db_engine, user.id, "lobby", duration_seconds="garbage")
        assert t.duration_seconds == 0.0

    def test_unknown_type_stored_as_other(self, db_engine, user):
        t = record_transition(db_engine, user.id, "B", from_key="A", transition_type="warp")
        assert t.transition_type == "OTHER"

    @pytest.mark.parametrize("user_id, to_key", [(None, "lobby"), (0, "lobby"), (1, None), (1, "")])
    def test_missing_fields_write_nothing(self, db_engine, user_id, to_key):
        assert record_transition(db_engine, user_id, to_key) is None
        with db_engine.connect() as conn:
            assert conn.scalar(select(func.count()).select_from(Transition)) == 0
        assert find_room(db_engine, "lobby") is None

"""
nodechat.services.reconciliation_service — Room Counter Reconciliation
=======================================================================

Validates the cached ``rooms.visit_count`` / ``rooms.message_count``
columns against the logs they summarise and corrects drift.

Why drift happens:
    A transition is three independent writes (source room, destination
    room, transition row).  If the last one fails, the destination's
    ``visit_count`` has already been incremented.  Nothing rolls that back
    at write time; this job does it after the fact.

How it works:
    1. ``COUNT(*)`` from ``transitions`` grouped by ``to_room_id``.
    2. ``COUNT(*)`` from ``messages`` grouped by ``room_id``.
    3. Compare against every room's cached counters (rooms with no rows in
       a log should read 0).
    4. Overwrite mismatches and log all corrections.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select, update

from nodechat.database.engine import get_session
from nodechat.database.models import Message, Room, Transition

logger = logging.getLogger(__name__)


def reconcile_room_counters(engine: Engine) -> dict:
    """Recount room counters from the logs and fix drift.

    Returns ``{"checked": N, "corrected": M, "corrections": [...],
    "timestamp": ...}`` where each correction names the room, the counter,
    and the stored / actual values.
    """
    corrections: list[dict] = []

    with get_session(engine) as session:
        visits: dict[int, int] = {
            room_id: count
            for room_id, count in session.execute(
                select(Transition.to_room_id, func.count())
                .group_by(Transition.to_room_id)
            ).all()
        }
        messages: dict[int, int] = {
            room_id: count
            for room_id, count in session.execute(
                select(Message.room_id, func.count())
                .group_by(Message.room_id)
            ).all()
        }

        rooms = session.execute(
            select(Room.id, Room.key, Room.visit_count, Room.message_count)
            .order_by(Room.id)
        ).all()

        for room in rooms:
            fixes: dict[str, int] = {}
            for counter, stored, actual in (
                ("visit_count", room.visit_count, visits.get(room.id, 0)),
                ("message_count", room.message_count, messages.get(room.id, 0)),
            ):
                if stored != actual:
                    fixes[counter] = actual
                    corrections.append({
                        "room_id": room.id,
                        "room_key": room.key,
                        "counter": counter,
                        "stored": stored,
                        "actual": actual,
                        "diff": actual - stored,
                    })
            if fixes:
                session.execute(update(Room).where(Room.id == room.id).values(**fixes))

    checked = len(rooms)
    if corrections:
        logger.warning(
            "Room counter reconciliation: corrected %d counter(s) across %d room(s): %s",
            len(corrections), checked, corrections,
        )
    else:
        logger.info("Room counter reconciliation: all %d rooms match", checked)

    return {
        "checked": checked,
        "corrected": len(corrections),
        "corrections": corrections,
        "timestamp": datetime.now(UTC).isoformat(),
    }

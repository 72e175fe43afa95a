"""
nodechat.services.room_service — Room Directory
================================================

Resolves human-chosen room keys to durable :class:`Room` rows.

Rooms are never created with a check-then-insert.  Every resolution is a
single ``INSERT … ON CONFLICT (key)`` statement, so concurrent joins of a
brand-new key from many connections produce exactly one row and every
destination increment is counted.

* **Destination** resolution (the room being entered) bumps
  ``visit_count`` and ``last_activity_at``; on creation it also records
  ``creator_id``.
* **Source** resolution (the room being left) only guarantees the row
  exists.  It never counts a visit.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from nodechat.database.engine import dialect_insert, get_session
from nodechat.database.models import Room, utcnow

logger = logging.getLogger(__name__)


def resolve_room_in_session(
    session: Session,
    key: str,
    *,
    is_destination: bool,
    creator_id: int | None = None,
) -> Room:
    """Upsert *key* inside an open session and return the current row."""
    insert = dialect_insert(session)

    if is_destination:
        now = utcnow()
        stmt = insert(Room).values(
            key=key,
            created_at=now,
            creator_id=creator_id,
            last_activity_at=now,
            visit_count=1,
            message_count=0,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Room.key],
            set_={
                "visit_count": Room.visit_count + 1,
                "last_activity_at": now,
            },
        )
    else:
        stmt = insert(Room).values(key=key, visit_count=0, message_count=0)
        stmt = stmt.on_conflict_do_nothing(index_elements=[Room.key])

    session.execute(stmt)
    # populate_existing: the identity map may hold a copy from before the upsert
    return session.scalars(
        select(Room).where(Room.key == key).execution_options(populate_existing=True)
    ).one()


def resolve_room(
    engine: Engine,
    key: str,
    *,
    is_destination: bool,
    creator_id: int | None = None,
) -> Room:
    """Resolve *key* to a Room, creating it if needed (one atomic upsert)."""
    with get_session(engine) as session:
        room = resolve_room_in_session(
            session, key, is_destination=is_destination, creator_id=creator_id,
        )
    logger.debug(
        "Resolved room key=%r id=%s destination=%s visits=%s",
        key, room.id, is_destination, room.visit_count,
    )
    return room


def find_room(engine: Engine, key: str) -> Room | None:
    """Look up a room by key without creating it."""
    with get_session(engine) as session:
        return session.scalar(select(Room).where(Room.key == key))


def pick_recommendation(engine: Engine, exclude_key: str | None) -> str | None:
    """Return one room key chosen uniformly at random, never *exclude_key*.

    Returns ``None`` when no other room exists.
    """
    query = select(Room.key)
    if exclude_key is not None:
        query = query.where(Room.key != exclude_key)
    query = query.order_by(func.random()).limit(1)

    with get_session(engine) as session:
        return session.scalar(query)

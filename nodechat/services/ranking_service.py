"""
nodechat.services.ranking_service — Hot-Room Ranking Queries
=============================================================

Read-only.  Aggregates the transition log per destination room inside a
time window, then hands the aggregates to the pure scorer in
:mod:`nodechat.engine.hotness`.

The query groups by ``to_room_id`` and is ordered by room id, which is
the "grouping order" the stable sort falls back to on equal scores.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import Engine, distinct, func, select

from nodechat.database.engine import get_session
from nodechat.database.models import Room, Transition, utcnow
from nodechat.engine.hotness import HotRoom, RoomActivity, rank_rooms

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_HOURS = 24.0
DEFAULT_LIMIT = 5
DEFAULT_MIN_VISITS = 1

MAX_WINDOW_HOURS = 720.0  # 30 days
MAX_LIMIT = 50


@dataclass(frozen=True, slots=True)
class RankingQuery:
    """Validated hot-room query parameters."""

    window_hours: float = DEFAULT_WINDOW_HOURS
    limit: int = DEFAULT_LIMIT
    min_visits: int = DEFAULT_MIN_VISITS

    @classmethod
    def from_raw(
        cls,
        window_hours: object = None,
        limit: object = None,
        min_visits: object = None,
        *,
        defaults: RankingQuery | None = None,
    ) -> RankingQuery:
        """Parse untrusted query-string values.

        Anything malformed or out of range falls back to the matching
        default instead of raising.
        """
        base = defaults or cls()

        window = _parse_float(window_hours)
        if window is None or not (0 < window <= MAX_WINDOW_HOURS):
            window = base.window_hours

        top = _parse_int(limit)
        if top is None or not (1 <= top <= MAX_LIMIT):
            top = base.limit

        floor = _parse_int(min_visits)
        if floor is None or floor < 1:
            floor = base.min_visits

        return cls(window_hours=window, limit=top, min_visits=floor)


def _parse_float(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if result != result or result in (float("inf"), float("-inf")):
        return None
    return result


def _parse_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def collect_room_activity(engine: Engine, since: datetime) -> list[RoomActivity]:
    """Aggregate transitions with ``created_at >= since`` per destination room."""
    per_room = (
        select(
            Transition.to_room_id.label("room_id"),
            func.count(Transition.id).label("total_visits"),
            func.count(distinct(Transition.user_id)).label("unique_users"),
            func.coalesce(func.sum(Transition.duration_seconds), 0.0).label("total_dwell"),
            func.max(Transition.created_at).label("last_activity"),
        )
        .where(Transition.created_at >= since)
        .group_by(Transition.to_room_id)
        .subquery()
    )

    query = (
        select(
            Room.id,
            Room.key,
            Room.created_at,
            per_room.c.total_visits,
            per_room.c.unique_users,
            per_room.c.total_dwell,
            per_room.c.last_activity,
        )
        .join(per_room, per_room.c.room_id == Room.id)
        .order_by(Room.id)
    )

    with get_session(engine) as session:
        rows = session.execute(query).all()

    return [
        RoomActivity(
            room_id=row.id,
            room_key=row.key,
            room_created_at=row.created_at,
            total_visits=int(row.total_visits or 0),
            unique_user_count=int(row.unique_users or 0),
            total_dwell_seconds=float(row.total_dwell or 0.0),
            last_activity=row.last_activity,
        )
        for row in rows
    ]


def rank_hot_rooms(
    engine: Engine,
    query: RankingQuery | None = None,
    *,
    now: datetime | None = None,
) -> list[HotRoom]:
    """Return the top hot rooms for *query* as of *now* (default: current time)."""
    query = query or RankingQuery()
    now = now or utcnow()
    since = now - timedelta(hours=query.window_hours)

    activities = collect_room_activity(engine, since)
    ranked = rank_rooms(
        activities, now=now, limit=query.limit, min_visits=query.min_visits,
    )
    logger.debug(
        "Ranked %d/%d active rooms (window=%.1fh limit=%d min_visits=%d)",
        len(ranked), len(activities), query.window_hours, query.limit, query.min_visits,
    )
    return ranked

"""
nodechat.engine.hotness — Hot-Room Scoring
===========================================

Pure scoring over per-room activity aggregates (no I/O, no database).
:mod:`nodechat.services.ranking_service` builds the aggregates from the
transition log; everything here is a deterministic function of those
aggregates and ``now``.

Each room's score is a fixed weighted sum of five signals::

    visit   = min(total_visits / 100, 1)      * 0.5
    users   = min(unique_user_count / 20, 1)  * 0.8
    dwell   = min(avg_dwell_seconds / 300, 1) * 0.3
    recency = exp(-hours_since(last_activity) / 12) * 1.2   # half-life ≈ 8.3 h
    age     = exp(-hours_since(created_at) / 24)    * 0.5   # half-life ≈ 16.6 h

A room with every signal saturated and zero decay scores 3.3.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, datetime

__all__ = [
    "HotRoom",
    "RoomActivity",
    "ScoreBreakdown",
    "as_utc",
    "hours_since",
    "rank_rooms",
    "score_activity",
]

# ---------------------------------------------------------------------------
# Signal weights and saturation points
# ---------------------------------------------------------------------------
VISIT_SATURATION = 100
VISIT_WEIGHT = 0.5

USER_SATURATION = 20
USER_WEIGHT = 0.8

DWELL_SATURATION_SECONDS = 300
DWELL_WEIGHT = 0.3

RECENCY_DECAY_HOURS = 12
RECENCY_WEIGHT = 1.2

AGE_DECAY_HOURS = 24
AGE_WEIGHT = 0.5


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------
def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def hours_since(then: datetime, now: datetime) -> float:
    """Hours elapsed from *then* to *now*, floored at 0.

    A timestamp slightly in the future (clock skew between app servers)
    counts as "just now" rather than boosting the score above its weight.
    """
    delta = (as_utc(now) - as_utc(then)).total_seconds() / 3600.0
    return max(delta, 0.0)


# ---------------------------------------------------------------------------
# Data carriers
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RoomActivity:
    """Transition aggregates for one destination room inside the window."""

    room_id: int
    room_key: str
    room_created_at: datetime
    total_visits: int
    unique_user_count: int
    total_dwell_seconds: float
    last_activity: datetime

    @property
    def avg_dwell_seconds(self) -> float:
        if self.total_visits <= 0:
            return 0.0
        return self.total_dwell_seconds / self.total_visits


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
    """The five weighted signals behind a hotness score."""

    visit: float
    users: float
    dwell: float
    recency: float
    age: float

    @property
    def total(self) -> float:
        return self.visit + self.users + self.dwell + self.recency + self.age


@dataclass(frozen=True, slots=True)
class HotRoom:
    """One entry of the hot-room ranking."""

    room_key: str
    total_visits: int
    unique_user_count: int
    avg_dwell_seconds: float
    last_activity: datetime
    created_at: datetime
    score: float

    def to_dict(self) -> dict:
        return {
            "roomKey": self.room_key,
            "totalVisits": self.total_visits,
            "uniqueUserCount": self.unique_user_count,
            "avgDwellSeconds": self.avg_dwell_seconds,
            "lastActivity": as_utc(self.last_activity).isoformat(),
            "createdAt": as_utc(self.created_at).isoformat(),
            "score": self.score,
        }


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------
def score_activity(activity: RoomActivity, now: datetime) -> ScoreBreakdown:
    """Compute the weighted signals for one room at time *now*."""
    return ScoreBreakdown(
        visit=min(activity.total_visits / VISIT_SATURATION, 1.0) * VISIT_WEIGHT,
        users=min(activity.unique_user_count / USER_SATURATION, 1.0) * USER_WEIGHT,
        dwell=min(activity.avg_dwell_seconds / DWELL_SATURATION_SECONDS, 1.0) * DWELL_WEIGHT,
        recency=math.exp(
            -hours_since(activity.last_activity, now) / RECENCY_DECAY_HOURS
        ) * RECENCY_WEIGHT,
        age=math.exp(
            -hours_since(activity.room_created_at, now) / AGE_DECAY_HOURS
        ) * AGE_WEIGHT,
    )


def rank_rooms(
    activities: list[RoomActivity],
    *,
    now: datetime,
    limit: int = 5,
    min_visits: int = 1,
) -> list[HotRoom]:
    """Filter, score and order *activities*; return the top *limit*.

    Rooms with fewer than *min_visits* visits are dropped before scoring.
    The sort is stable, so equal scores keep the input (grouping) order.
    """
    scored: list[HotRoom] = []
    for activity in activities:
        if activity.total_visits < min_visits or activity.total_visits <= 0:
            continue
        breakdown = score_activity(activity, now)
        scored.append(HotRoom(
            room_key=activity.room_key,
            total_visits=activity.total_visits,
            unique_user_count=activity.unique_user_count,
            avg_dwell_seconds=activity.avg_dwell_seconds,
            last_activity=activity.last_activity,
            created_at=activity.room_created_at,
            score=breakdown.total,
        ))

    scored.sort(key=lambda room: room.score, reverse=True)
    return scored[:limit]

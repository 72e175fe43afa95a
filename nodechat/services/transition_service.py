"""
nodechat.services.transition_service — Transition Log
======================================================

Append-only record of every room change.  One call to
:func:`record_transition` is three independent atomic writes:

    1. resolve the source room (no visit counted),
    2. resolve the destination room (visit counted),
    3. append the :class:`Transition` row.

There is no enclosing transaction.  If step 3 fails after step 2, the
destination's ``visit_count`` is one ahead of the log; the reconciliation
job (:mod:`nodechat.services.reconciliation_service`) repairs that drift.
"""

from __future__ import annotations

import logging
import math

from sqlalchemy import Engine

from nodechat.database.engine import get_session
from nodechat.database.models import Transition, TransitionType, utcnow
from nodechat.services.room_service import resolve_room

logger = logging.getLogger(__name__)

DEFAULT_MAX_DWELL_SECONDS = 21600.0  # 6 hours


def clamp_dwell(value: object, max_seconds: float = DEFAULT_MAX_DWELL_SECONDS) -> float:
    """Clamp a client-reported dwell time into ``[0, max_seconds]``.

    Anything that isn't a finite number counts as 0.
    """
    if isinstance(value, bool):
        return 0.0
    try:
        seconds = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(seconds) or seconds < 0:
        return 0.0
    return min(seconds, max_seconds)


def record_transition(
    engine: Engine,
    user_id: int | None,
    to_key: str | None,
    *,
    from_key: str | None = None,
    transition_type: str | None = None,
    duration_seconds: object = 0,
    max_dwell_seconds: float = DEFAULT_MAX_DWELL_SECONDS,
) -> Transition | None:
    """Log a move of *user_id* from *from_key* (optional) to *to_key*.

    Returns the new Transition, or ``None`` when ``user_id`` or ``to_key``
    is missing (nothing is written).
    """
    if not user_id or not to_key:
        logger.info(
            "Transition rejected: missing field(s) user_id=%r to_key=%r",
            user_id, to_key,
        )
        return None

    from_room = (
        resolve_room(engine, from_key, is_destination=False) if from_key else None
    )
    to_room = resolve_room(engine, to_key, is_destination=True, creator_id=user_id)

    transition = Transition(
        user_id=user_id,
        from_room_id=from_room.id if from_room else None,
        to_room_id=to_room.id,
        transition_type=TransitionType.coerce(
            transition_type, has_source=from_room is not None,
        ).value,
        duration_seconds=clamp_dwell(duration_seconds, max_dwell_seconds),
        created_at=utcnow(),
    )
    with get_session(engine) as session:
        session.add(transition)
        session.flush()

    logger.info(
        "Transition user=%s %r → %r type=%s dwell=%.0fs",
        user_id, from_key, to_key, transition.transition_type,
        transition.duration_seconds,
    )
    return transition

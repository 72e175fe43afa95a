"""
nodechat.services.message_service — Message Store
==================================================

Append-only per-room chat messages.

A message can never be the first reference to a room: the room must
already exist from a transition.  History on join is the **oldest**
``limit`` messages of the room, in ascending order.  That window is
deliberate product behaviour and is pinned by tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, select, update

from nodechat.database.engine import get_session
from nodechat.database.models import Message, Room, User, utcnow

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


@dataclass(frozen=True, slots=True)
class ChatLine:
    """A persisted message with its sender's nickname joined in."""

    message_id: int
    room_id: int
    text: str
    sender_id: int
    sender_nickname: str | None
    created_at: datetime


def post_message(
    engine: Engine,
    user_id: int | None,
    room_key: str | None,
    text: str,
) -> ChatLine | None:
    """Persist *text* from *user_id* into the room keyed *room_key*.

    Also bumps the room's ``message_count`` and ``last_activity_at`` with an
    atomic ``UPDATE … SET message_count = message_count + 1`` in the same
    transaction.

    Returns ``None`` without writing when ``user_id`` is missing, the user
    is unknown, or the room does not exist.
    """
    if not user_id or not room_key:
        logger.info(
            "Message rejected: missing field(s) user_id=%r room_key=%r",
            user_id, room_key,
        )
        return None

    with get_session(engine) as session:
        room = session.scalar(select(Room).where(Room.key == room_key))
        if room is None:
            logger.info("Message rejected: room %r does not exist", room_key)
            return None
        user = session.get(User, user_id)
        if user is None:
            logger.info("Message rejected: unknown user %s", user_id)
            return None

        now = utcnow()
        message = Message(room_id=room.id, user_id=user.id, text=text, created_at=now)
        session.add(message)
        session.execute(
            update(Room)
            .where(Room.id == room.id)
            .values(message_count=Room.message_count + 1, last_activity_at=now)
        )
        session.flush()

        line = ChatLine(
            message_id=message.id,
            room_id=room.id,
            text=message.text,
            sender_id=user.id,
            sender_nickname=user.nickname,
            created_at=message.created_at,
        )

    logger.debug("Message %s stored in room %r", line.message_id, room_key)
    return line


def fetch_history(
    engine: Engine,
    room_id: int,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> list[ChatLine]:
    """Return the **oldest** *limit* messages of *room_id*, ascending.

    Ties on ``created_at`` fall back to insertion order (``id``).
    """
    with get_session(engine) as session:
        rows = session.execute(
            select(Message, User.nickname)
            .join(User, User.id == Message.user_id)
            .where(Message.room_id == room_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
            .limit(limit)
        ).all()

    return [
        ChatLine(
            message_id=msg.id,
            room_id=msg.room_id,
            text=msg.text,
            sender_id=msg.user_id,
            sender_nickname=nickname,
            created_at=msg.created_at,
        )
        for msg, nickname in rows
    ]

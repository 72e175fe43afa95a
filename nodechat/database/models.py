"""
nodechat.database.models — SQLAlchemy 2.0 Data Models
======================================================

Tables:
- users        — Anonymous identities keyed by a client-issued local token
- rooms        — Chat nodes keyed by free text, with cached counters
- transitions  — Append-only log of room-to-room moves (ranking source)
- messages     — Append-only per-room chat messages

The ``visit_count`` / ``message_count`` columns on ``rooms`` are caches.
The ``transitions`` and ``messages`` tables are the source of truth, see
:mod:`nodechat.services.reconciliation_service`.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Timezone-aware ``now`` used for every timestamp column."""
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all NodeChat ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class TransitionType(enum.StrEnum):
    """How a user arrived in a room."""
    INITIAL = "INITIAL"                # First room after session setup
    GO_COMMAND = "GO_COMMAND"          # "/go <key>" typed in chat
    RECOMMENDATION = "RECOMMENDATION"  # Followed the recommendation button
    HOT_ROOM = "HOT_ROOM"              # Picked from the hot-rooms list
    OTHER = "OTHER"                    # Anything a client sends that we don't know

    @classmethod
    def coerce(cls, value: str | None, *, has_source: bool) -> TransitionType:
        """Map a client-supplied string onto the closed enum.

        Missing values default to ``INITIAL`` for a first entry and ``OTHER``
        for a move between rooms.  Unknown strings become ``OTHER``.
        """
        if not value:
            return cls.OTHER if has_source else cls.INITIAL
        try:
            return cls(value.strip().upper())
        except ValueError:
            return cls.OTHER


# ---------------------------------------------------------------------------
# Users — one row per anonymous local token
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    local_token: Mapped[str] = mapped_column(String(128), nullable=False)
    nickname: Mapped[str | None] = mapped_column(String(64), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    last_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    # Acquisition attribution (UTM parameters), last write wins per field
    utm_source: Mapped[str | None] = mapped_column(String(255), default=None)
    utm_medium: Mapped[str | None] = mapped_column(String(255), default=None)
    utm_campaign: Mapped[str | None] = mapped_column(String(255), default=None)
    utm_content: Mapped[str | None] = mapped_column(String(255), default=None)
    utm_term: Mapped[str | None] = mapped_column(String(255), default=None)

    messages: Mapped[list[Message]] = relationship(back_populates="user")

    __table_args__ = (
        UniqueConstraint("local_token", name="uq_users_local_token"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} nickname={self.nickname!r}>"


# ---------------------------------------------------------------------------
# Rooms — chat nodes, created lazily on first reference
# ---------------------------------------------------------------------------
class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    creator_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), default=None
    )
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    message_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    visit_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    __table_args__ = (
        UniqueConstraint("key", name="uq_rooms_key"),
    )

    def __repr__(self) -> str:
        return (
            f"<Room id={self.id} key={self.key!r} "
            f"visits={self.visit_count} messages={self.message_count}>"
        )


# ---------------------------------------------------------------------------
# Transitions — immutable room-change log
# ---------------------------------------------------------------------------
class Transition(Base):
    __tablename__ = "transitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    from_room_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("rooms.id", ondelete="SET NULL"), default=None
    )
    to_room_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False
    )
    transition_type: Mapped[str] = mapped_column(
        String(32), nullable=False, default=TransitionType.INITIAL.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    # Client-reported dwell time in the *previous* room, clamped on write
    duration_seconds: Mapped[float] = mapped_column(Float, default=0.0, server_default="0")

    __table_args__ = (
        Index("ix_transitions_created_at", "created_at"),
        Index("ix_transitions_to_room_time", "to_room_id", "created_at"),
        Index("ix_transitions_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Transition id={self.id} user={self.user_id} "
            f"{self.from_room_id}->{self.to_room_id} type={self.transition_type}>"
        )


# ---------------------------------------------------------------------------
# Messages — immutable chat lines
# ---------------------------------------------------------------------------
class Message(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    room_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="messages")

    __table_args__ = (
        Index("ix_messages_room_time", "room_id", "created_at", "id"),
    )

    def __repr__(self) -> str:
        return f"<Message id={self.id} room={self.room_id} user={self.user_id}>"

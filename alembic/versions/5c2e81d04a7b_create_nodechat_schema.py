"""Create users, rooms, transitions and messages tables

Revision ID: 5c2e81d04a7b
Revises:
Create Date: 2026-10-19 15:02:11.418203

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5c2e81d04a7b'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the four NodeChat tables and their query indexes."""

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("local_token", sa.String(128), nullable=False),
        sa.Column("nickname", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("utm_source", sa.String(255), nullable=True),
        sa.Column("utm_medium", sa.String(255), nullable=True),
        sa.Column("utm_campaign", sa.String(255), nullable=True),
        sa.Column("utm_content", sa.String(255), nullable=True),
        sa.Column("utm_term", sa.String(255), nullable=True),
        # Upsert target for establish_session
        sa.UniqueConstraint("local_token", name="uq_users_local_token"),
    )

    # --- rooms ---
    op.create_table(
        "rooms",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("key", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column(
            "creator_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("message_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("visit_count", sa.Integer, nullable=False, server_default="0"),
        # Upsert target for resolve_room; makes concurrent creation safe
        sa.UniqueConstraint("key", name="uq_rooms_key"),
    )

    # --- transitions ---
    op.create_table(
        "transitions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "from_room_id", sa.Integer,
            sa.ForeignKey("rooms.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column(
            "to_room_id", sa.Integer,
            sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("transition_type", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("duration_seconds", sa.Float, nullable=False, server_default="0"),
    )
    # Hot-room window scan and per-room aggregation
    op.create_index("ix_transitions_created_at", "transitions", ["created_at"])
    op.create_index("ix_transitions_to_room_time", "transitions", ["to_room_id", "created_at"])
    op.create_index("ix_transitions_user_time", "transitions", ["user_id", "created_at"])

    # --- messages ---
    op.create_table(
        "messages",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "room_id", sa.Integer,
            sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "user_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("text", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    # History: oldest-N per room, insertion order on ties
    op.create_index("ix_messages_room_time", "messages", ["room_id", "created_at", "id"])


def downgrade() -> None:
    """Drop all NodeChat tables."""
    op.drop_index("ix_messages_room_time", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_transitions_user_time", table_name="transitions")
    op.drop_index("ix_transitions_to_room_time", table_name="transitions")
    op.drop_index("ix_transitions_created_at", table_name="transitions")
    op.drop_table("transitions")
    op.drop_table("rooms")
    op.drop_table("users")

"""
nodechat.services.identity_service — Anonymous Identity Registry
=================================================================

Resolves a client-generated ``localToken`` to a durable :class:`User`.
The token is opaque and unverified; whoever presents it *is* that user.

The find-or-create is one ``INSERT … ON CONFLICT (local_token) DO UPDATE``
so two tabs opening at once can never create two rows for one token.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from sqlalchemy import Engine, select

from nodechat.database.engine import dialect_insert, get_session
from nodechat.database.models import User, utcnow

logger = logging.getLogger(__name__)

# Wire name → column name
ATTRIBUTION_FIELDS: dict[str, str] = {
    "source": "utm_source",
    "medium": "utm_medium",
    "campaign": "utm_campaign",
    "content": "utm_content",
    "term": "utm_term",
}
ATTRIBUTION_MAX_LENGTH = 255


def attribution_columns(attribution: Mapping[str, str | None] | None) -> dict[str, str]:
    """Map non-empty attribution fields onto their ``utm_*`` columns.

    Missing or blank fields are omitted so they never overwrite a stored
    value.  Values are cut to the column width.
    """
    if not attribution:
        return {}
    return {
        column: str(attribution[name])[:ATTRIBUTION_MAX_LENGTH]
        for name, column in ATTRIBUTION_FIELDS.items()
        if attribution.get(name)
    }


def establish_session(
    engine: Engine,
    local_token: str,
    nickname: str | None,
    attribution: Mapping[str, str | None] | None = None,
) -> User:
    """Find or create the user for *local_token* and refresh its session data.

    Always sets ``nickname`` and ``last_seen_at``.  Non-empty attribution
    fields overwrite stored ones (last write wins); the rest are left alone.
    ``created_at`` is only written on insert.
    """
    now = utcnow()
    updates: dict[str, object] = {
        "nickname": nickname,
        "last_seen_at": now,
        **attribution_columns(attribution),
    }

    with get_session(engine) as session:
        insert = dialect_insert(session)
        stmt = insert(User).values(local_token=local_token, created_at=now, **updates)
        stmt = stmt.on_conflict_do_update(
            index_elements=[User.local_token],
            set_=updates,
        )
        session.execute(stmt)
        user = session.scalar(select(User).where(User.local_token == local_token))

    logger.info(
        "Session established: user=%s nickname=%r attribution=%s",
        user.id, user.nickname, sorted(attribution_columns(attribution)),
    )
    return user

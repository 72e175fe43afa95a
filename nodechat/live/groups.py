"""
nodechat.live.groups — Room Fan-out Registry
=============================================

In-memory map of room key → connections currently attached to that room.
``attach`` and ``detach`` are the only mutators.  Membership is a set, so
a connection can never be in a group twice, and empty groups are pruned
on the way out.

Not thread-safe: only the event-loop thread touches it, and neither
mutator awaits, so a join's detach+attach is atomic with respect to any
broadcast.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """Anything that can receive outbound frames (a WebSocket adapter, a test fake)."""

    connection_id: str

    async def send(self, frame: dict[str, Any]) -> None: ...


class RoomGroups:
    """Room key → set of live connections."""

    def __init__(self) -> None:
        self._groups: dict[str, set[Connection]] = defaultdict(set)

    def attach(self, room_key: str, connection: Connection) -> bool:
        """Add *connection* to *room_key*'s group.  False if already a member."""
        members = self._groups[room_key]
        if connection in members:
            return False
        members.add(connection)
        logger.debug(
            "Attached %s to %r (%d online)",
            connection.connection_id, room_key, len(members),
        )
        return True

    def detach(self, room_key: str, connection: Connection) -> bool:
        """Remove *connection* from *room_key*'s group.  False if it wasn't there."""
        members = self._groups.get(room_key)
        if not members or connection not in members:
            return False
        members.discard(connection)
        if not members:
            del self._groups[room_key]
        logger.debug("Detached %s from %r", connection.connection_id, room_key)
        return True

    def members(self, room_key: str) -> tuple[Connection, ...]:
        """Snapshot of the group, safe to iterate across ``await`` points."""
        return tuple(self._groups.get(room_key, ()))

    def count(self, room_key: str) -> int:
        return len(self._groups.get(room_key, ()))

    def occupancy(self) -> dict[str, int]:
        """``{room_key: connection_count}`` for every non-empty group."""
        return {key: len(members) for key, members in self._groups.items() if members}

    def __contains__(self, item: tuple[str, Connection]) -> bool:
        room_key, connection = item
        return connection in self._groups.get(room_key, ())

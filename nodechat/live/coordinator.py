"""
nodechat.live.coordinator — Live Session Coordinator
=====================================================

Binds each WebSocket connection to one anonymous identity and at most one
room, and runs the four stores for every inbound event.

Per-connection state machine::

    UNAUTHENTICATED ──userSetup──▶ IDENTIFIED ──joinRoom──▶ IN_ROOM
                                        ▲                    │  ▲
                                        └─────leaveRoom──────┘  └─joinRoom
    any ──disconnect──▶ CLOSED

Pipeline for one frame:
1. ``parse_event`` → closed event model (or a logged validation drop)
2. State / identity gate checks
3. Store work via ``run_db`` (background thread, event loop stays free)
4. Reply to the origin and/or broadcast to the room group

Failures never reach the client.  Every handler returns an
:class:`~nodechat.engine.events.Outcome` and logs anything that isn't OK.

Join ordering: the connection is moved between groups synchronously,
then broadcasts to it are buffered until its history frame has been sent.
Buffered messages that already appear in the history are dropped, so a
message sent during a join is delivered exactly once.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from nodechat.config import NodeChatConfig
from nodechat.database.engine import run_db
from nodechat.engine.events import (
    InboundEvent,
    InvalidEvent,
    JoinRoom,
    LeaveRoom,
    Outcome,
    OutcomeStatus,
    RequestRecommendation,
    SendMessage,
    UserSetup,
    history_frame,
    parse_event,
    receive_message_frame,
    recommendation_frame,
    session_established_frame,
)
from nodechat.live.groups import Connection, RoomGroups
from nodechat.services.identity_service import establish_session
from nodechat.services.message_service import ChatLine, fetch_history, post_message
from nodechat.services.room_service import pick_recommendation
from nodechat.services.transition_service import record_transition

logger = logging.getLogger(__name__)


class SessionState(enum.StrEnum):
    UNAUTHENTICATED = "UNAUTHENTICATED"
    IDENTIFIED = "IDENTIFIED"
    IN_ROOM = "IN_ROOM"
    CLOSED = "CLOSED"


@dataclass(eq=False)
class ConnectionSession:
    """Server-side state for one live connection."""

    connection: Connection
    state: SessionState = SessionState.UNAUTHENTICATED
    user_id: int | None = None
    nickname: str | None = None
    room_key: str | None = None
    # Broadcasts held back while a join's history is in flight: (message_id, frame)
    _pending: list[tuple[int, dict[str, Any]]] | None = field(default=None, repr=False)

    @property
    def connection_id(self) -> str:
        return self.connection.connection_id


class SessionCoordinator:
    """Runs the per-connection state machine over a shared store.

    The store is the injected *engine*; the fan-out registry is owned here.
    """

    def __init__(
        self,
        engine: Engine,
        config: NodeChatConfig | None = None,
        groups: RoomGroups | None = None,
    ) -> None:
        self.engine = engine
        self.config = config or NodeChatConfig()
        self.groups = groups or RoomGroups()
        self._sessions: dict[Connection, ConnectionSession] = {}

    # -------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------
    def open(self, connection: Connection) -> ConnectionSession:
        """Register a new connection in the UNAUTHENTICATED state."""
        session = ConnectionSession(connection=connection)
        self._sessions[connection] = session
        logger.info("Connection opened: %s", connection.connection_id)
        return session

    def close(self, session: ConnectionSession) -> Outcome:
        """Handle ``disconnect``: leave any group.  No store mutation."""
        if session.room_key is not None:
            self.groups.detach(session.room_key, session.connection)
        session.room_key = None
        session._pending = None
        session.state = SessionState.CLOSED
        self._sessions.pop(session.connection, None)
        logger.info(
            "Connection closed: %s (user=%s)", session.connection_id, session.user_id,
        )
        return Outcome("disconnect", OutcomeStatus.OK)

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    # -------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------
    async def handle_frame(self, session: ConnectionSession, frame: Any) -> Outcome:
        """Parse and handle one decoded inbound frame."""
        try:
            event = parse_event(frame)
        except InvalidEvent as exc:
            name = frame.get("event") if isinstance(frame, dict) else None
            return self._drop(session, name if isinstance(name, str) else "unknown", str(exc))
        return await self.dispatch(session, event)

    async def dispatch(self, session: ConnectionSession, event: InboundEvent) -> Outcome:
        """Route a parsed event to its handler, turning store errors into outcomes."""
        if session.state is SessionState.CLOSED:
            return self._drop(session, event.event, "connection already closed")

        try:
            match event:
                case UserSetup():
                    return await self.on_user_setup(session, event)
                case JoinRoom():
                    return await self.on_join_room(session, event)
                case SendMessage():
                    return await self.on_send_message(session, event)
                case RequestRecommendation():
                    return await self.on_request_recommendation(session, event)
                case LeaveRoom():
                    return self.on_leave_room(session)
        except SQLAlchemyError:
            logger.exception(
                "Store failure handling %s for %s", event.event, session.connection_id,
            )
            return Outcome(event.event, OutcomeStatus.STORE_FAILED)
        return self._drop(session, event.event, "no handler")

    # -------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------
    async def on_user_setup(self, session: ConnectionSession, event: UserSetup) -> Outcome:
        attribution = event.attribution.model_dump() if event.attribution else None
        user = await run_db(
            establish_session, self.engine, event.local_token, event.nickname, attribution,
        )
        session.user_id = user.id
        session.nickname = user.nickname
        if session.state is SessionState.UNAUTHENTICATED:
            session.state = SessionState.IDENTIFIED

        await self._send(session, session_established_frame(user.id, user.nickname))
        return Outcome(event.event, OutcomeStatus.OK)

    async def on_join_room(self, session: ConnectionSession, event: JoinRoom) -> Outcome:
        if session.user_id is None:
            return self._drop(session, event.event, "no established identity")
        if event.user_id != session.user_id:
            return self._drop(
                session, event.event,
                f"userId {event.user_id} does not match session user {session.user_id}",
            )

        transition = await run_db(
            record_transition,
            self.engine,
            event.user_id,
            event.to_room_key,
            from_key=event.from_room_key,
            transition_type=event.transition_type,
            duration_seconds=event.duration_seconds,
            max_dwell_seconds=self.config.max_dwell_seconds,
        )
        if transition is None:
            return self._drop(session, event.event, "transition rejected")

        # Group change: no await between detach and attach
        if session.room_key is not None and session.room_key != event.to_room_key:
            self.groups.detach(session.room_key, session.connection)
        self.groups.attach(event.to_room_key, session.connection)
        session.room_key = event.to_room_key
        session.state = SessionState.IN_ROOM
        session._pending = []

        try:
            lines = await run_db(
                fetch_history, self.engine, transition.to_room_id, self.config.history_limit,
            )
        except SQLAlchemyError:
            # Still in the room; release whatever was buffered meanwhile
            await self._flush_pending(session, seen=set())
            raise

        if session.room_key != event.to_room_key:
            # A later join or a disconnect overtook this one
            return Outcome(event.event, OutcomeStatus.OK, "superseded")

        await self._send(session, history_frame(lines))
        await self._flush_pending(session, seen={line.message_id for line in lines})
        return Outcome(event.event, OutcomeStatus.OK)

    async def on_send_message(self, session: ConnectionSession, event: SendMessage) -> Outcome:
        if session.user_id is None or event.user_id != session.user_id:
            return self._drop(session, event.event, "sender is not this session's user")
        if session.state is not SessionState.IN_ROOM or session.room_key != event.room_key:
            return self._drop(
                session, event.event, f"not in room {event.room_key!r}",
            )

        line = await run_db(
            post_message, self.engine, event.user_id, event.room_key, event.text,
        )
        if line is None:
            logger.info(
                "Dropped sendMessage from %s: room %r or user %s not found",
                session.connection_id, event.room_key, event.user_id,
            )
            return Outcome(event.event, OutcomeStatus.NOT_FOUND)

        await self.broadcast(event.room_key, line)
        return Outcome(event.event, OutcomeStatus.OK)

    async def on_request_recommendation(
        self, session: ConnectionSession, event: RequestRecommendation,
    ) -> Outcome:
        recommended = await run_db(pick_recommendation, self.engine, event.room_key)
        await self._send(session, recommendation_frame(recommended))
        return Outcome(event.event, OutcomeStatus.OK)

    def on_leave_room(self, session: ConnectionSession) -> Outcome:
        if session.room_key is not None:
            self.groups.detach(session.room_key, session.connection)
            logger.info("%s left room %r", session.connection_id, session.room_key)
        session.room_key = None
        session._pending = None
        if session.state is SessionState.IN_ROOM:
            session.state = SessionState.IDENTIFIED
        return Outcome("leaveRoom", OutcomeStatus.OK)

    # -------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------
    async def broadcast(self, room_key: str, line: ChatLine) -> int:
        """Deliver *line* to every connection in *room_key*'s group.

        Returns the number of connections the frame was sent or buffered for.
        """
        frame = receive_message_frame(line)
        delivered = 0
        for connection in self.groups.members(room_key):
            session = self._sessions.get(connection)
            if session is None:
                self.groups.detach(room_key, connection)
                continue
            if session._pending is not None:
                session._pending.append((line.message_id, frame))
                delivered += 1
                continue
            if await self._send(session, frame):
                delivered += 1
        return delivered

    async def _flush_pending(self, session: ConnectionSession, seen: set[int]) -> None:
        while session._pending:
            message_id, frame = session._pending.pop(0)
            if message_id not in seen:
                await self._send(session, frame)
        session._pending = None

    async def _send(self, session: ConnectionSession, frame: dict[str, Any]) -> bool:
        """Send one frame; a dead socket is detached instead of raising."""
        try:
            await session.connection.send(frame)
            return True
        except Exception:
            logger.warning(
                "Delivery of %s to %s failed; detaching",
                frame.get("event"), session.connection_id, exc_info=True,
            )
            if session.room_key is not None:
                self.groups.detach(session.room_key, session.connection)
            return False

    def _drop(self, session: ConnectionSession, event_name: str, reason: str) -> Outcome:
        logger.info("Dropped %s from %s: %s", event_name, session.connection_id, reason)
        return Outcome(event_name, OutcomeStatus.VALIDATION_FAILED, reason)

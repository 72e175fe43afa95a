"""
nodechat.api.routes.realtime — WebSocket session endpoint
==========================================================

One task per connection: frames are read and handled strictly in order,
so a client's ``joinRoom`` always finishes before its next ``sendMessage``
is looked at.  Everything else lives in
:class:`~nodechat.live.coordinator.SessionCoordinator`.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from fastapi import APIRouter, WebSocket

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


class WebSocketConnection:
    """Adapts a Starlette :class:`WebSocket` to the coordinator's Connection protocol."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.connection_id = uuid.uuid4().hex[:12]

    async def send(self, frame: dict[str, Any]) -> None:
        await self.websocket.send_json(frame)

    def __repr__(self) -> str:
        return f"<WebSocketConnection {self.connection_id}>"


@router.websocket("/ws")
async def session_socket(websocket: WebSocket) -> None:
    coordinator = websocket.app.state.coordinator
    await websocket.accept()
    session = coordinator.open(WebSocketConnection(websocket))

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            try:
                frame = json.loads(raw)
            except (TypeError, ValueError):
                logger.info("Dropped non-JSON frame from %s", session.connection_id)
                continue

            try:
                await coordinator.handle_frame(session, frame)
            except Exception:
                logger.exception("Unhandled error for %s", session.connection_id)
    finally:
        coordinator.close(session)

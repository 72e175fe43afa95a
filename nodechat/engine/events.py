"""
nodechat.engine.events — Session Event Schema
==============================================

Every frame on the WebSocket is a JSON envelope::

    {"event": "<name>", "data": {...}}

Inbound frames are parsed into a closed set of pydantic models
discriminated on ``event``.  Anything else (unknown name, missing
required field, wrong type) raises :class:`InvalidEvent`, which the
coordinator turns into a logged, silent drop.

Older clients used different event and field names
(``joinNodeAndLogTransition``, ``toNodeKey``, ``duration``, ``localId``,
``utm``…); those are accepted as aliases.

Outbound frames are built by the ``*_frame`` helpers at the bottom so the
wire shape lives in one place.
"""

from __future__ import annotations

import enum
import hashlib
import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Annotated, Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from nodechat.engine.hotness import as_utc

__all__ = [
    "Attribution",
    "InboundEvent",
    "InvalidEvent",
    "JoinRoom",
    "LeaveRoom",
    "Outcome",
    "OutcomeStatus",
    "RequestRecommendation",
    "SendMessage",
    "UserSetup",
    "history_frame",
    "parse_event",
    "receive_message_frame",
    "recommendation_frame",
    "session_established_frame",
]

# Legacy event name → current event name
LEGACY_EVENT_NAMES: dict[str, str] = {
    "joinNodeAndLogTransition": "joinRoom",
    "getRecommendation": "requestRecommendation",
}


# Column widths in the users table
TOKEN_MAX_LENGTH = 128
NICKNAME_MAX_LENGTH = 64


class InvalidEvent(ValueError):
    """Raised when an inbound frame doesn't match any known event."""


# ---------------------------------------------------------------------------
# Outcomes — every handler reports one
# ---------------------------------------------------------------------------
class OutcomeStatus(enum.StrEnum):
    OK = "ok"
    VALIDATION_FAILED = "validation_failed"
    NOT_FOUND = "not_found"
    STORE_FAILED = "store_failed"


@dataclass(frozen=True, slots=True)
class Outcome:
    """Result of handling one inbound event.

    Failures are never sent to the client; the coordinator logs them and
    returns the outcome so callers (and tests) can see what happened.
    """

    event: str
    status: OutcomeStatus
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.OK


# ---------------------------------------------------------------------------
# Inbound payloads
# ---------------------------------------------------------------------------
class _Inbound(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class Attribution(_Inbound):
    """Acquisition campaign parameters (UTM)."""

    source: str | None = None
    medium: str | None = None
    campaign: str | None = None
    content: str | None = None
    term: str | None = None


class UserSetup(_Inbound):
    event: Literal["userSetup"]
    local_token: str = Field(
        min_length=1,
        validation_alias=AliasChoices("localToken", "localId", "local_token"),
    )
    nickname: str | None = None
    attribution: Attribution | None = Field(
        default=None, validation_alias=AliasChoices("attribution", "utm"),
    )

    @field_validator("local_token", mode="before")
    @classmethod
    def fit_token(cls, value: Any) -> Any:
        """Tokens wider than the column are stored as their SHA-256 digest.

        The digest is stable, so the same long token still resolves to the
        same user on every reconnect.
        """
        if isinstance(value, str) and len(value) > TOKEN_MAX_LENGTH:
            return hashlib.sha256(value.encode("utf-8")).hexdigest()
        return value

    @field_validator("nickname", mode="before")
    @classmethod
    def fit_nickname(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value[:NICKNAME_MAX_LENGTH]
        return value


class JoinRoom(_Inbound):
    event: Literal["joinRoom"]
    user_id: int = Field(gt=0, validation_alias=AliasChoices("userId", "user_id"))
    from_room_key: str | None = Field(
        default=None, max_length=255,
        validation_alias=AliasChoices("fromRoomKey", "fromNodeKey", "from_room_key"),
    )
    to_room_key: str = Field(
        min_length=1, max_length=255,
        validation_alias=AliasChoices("toRoomKey", "toNodeKey", "to_room_key"),
    )
    duration_seconds: float = Field(
        default=0.0,
        validation_alias=AliasChoices("durationSeconds", "duration", "duration_seconds"),
    )
    transition_type: str | None = Field(
        default=None,
        validation_alias=AliasChoices("transitionType", "transition_type"),
    )

    @field_validator("from_room_key", "to_room_key", mode="before")
    @classmethod
    def blank_keys_to_none(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("duration_seconds", mode="before")
    @classmethod
    def lenient_duration(cls, value: Any) -> float:
        """Client clocks are untrusted; garbage becomes 0 instead of a drop."""
        if value is None or isinstance(value, bool):
            return 0.0
        try:
            seconds = float(value)
        except (TypeError, ValueError):
            return 0.0
        return seconds if math.isfinite(seconds) else 0.0


class SendMessage(_Inbound):
    event: Literal["sendMessage"]
    user_id: int = Field(gt=0, validation_alias=AliasChoices("userId", "user_id"))
    room_key: str = Field(
        min_length=1, max_length=255,
        validation_alias=AliasChoices("roomKey", "nodeKey", "room_key"),
    )
    text: str = Field(default="", max_length=4000)


class RequestRecommendation(_Inbound):
    event: Literal["requestRecommendation"]
    room_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("roomKey", "nodeKey", "room_key"),
    )


class LeaveRoom(_Inbound):
    event: Literal["leaveRoom"]


InboundEvent = Annotated[
    UserSetup | JoinRoom | SendMessage | RequestRecommendation | LeaveRoom,
    Field(discriminator="event"),
]

_inbound_adapter: TypeAdapter[InboundEvent] = TypeAdapter(InboundEvent)


def parse_event(frame: Any) -> InboundEvent:
    """Validate one decoded JSON frame into an inbound event model.

    Raises :class:`InvalidEvent` for anything that isn't a well-formed
    ``{"event": str, "data": object}`` envelope of a known event.
    """
    if not isinstance(frame, dict):
        raise InvalidEvent("frame is not a JSON object")

    name = frame.get("event")
    if not isinstance(name, str):
        raise InvalidEvent("frame has no event name")
    name = LEGACY_EVENT_NAMES.get(name, name)

    data = frame.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise InvalidEvent(f"{name}: data is not a JSON object")

    try:
        return _inbound_adapter.validate_python({**data, "event": name})
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        raise InvalidEvent(f"{name}: invalid field(s) {fields}") from exc


# ---------------------------------------------------------------------------
# Outbound frames
# ---------------------------------------------------------------------------
def _frame(event: str, data: Any) -> dict[str, Any]:
    return {"event": event, "data": data}


def _chat_line(line) -> dict[str, Any]:
    return {
        "text": line.text,
        "senderId": line.sender_id,
        "senderNickname": line.sender_nickname,
        "createdAt": as_utc(line.created_at).isoformat(),
    }


def session_established_frame(user_id: int, nickname: str | None) -> dict[str, Any]:
    return _frame("sessionEstablished", {"userId": user_id, "nickname": nickname})


def history_frame(lines: Iterable) -> dict[str, Any]:
    return _frame("history", [_chat_line(line) for line in lines])


def receive_message_frame(line) -> dict[str, Any]:
    return _frame("receiveMessage", _chat_line(line))


def recommendation_frame(recommended_key: str | None) -> dict[str, Any]:
    # null is the explicit "nothing to recommend" signal
    return _frame("recommendationResult", {"recommendedKey": recommended_key})

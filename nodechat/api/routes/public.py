"""
nodechat.api.routes.public — Read-only public endpoints
========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from nodechat.api.deps import get_config, get_coordinator, get_engine
from nodechat.config import NodeChatConfig
from nodechat.live.coordinator import SessionCoordinator
from nodechat.services.ranking_service import RankingQuery, rank_hot_rooms

router = APIRouter(tags=["public"])


# ---------------------------------------------------------------------------
# GET /hot-rooms
# ---------------------------------------------------------------------------
@router.get("/hot-rooms")
@router.get("/hot-nodes", include_in_schema=False)
def get_hot_rooms(
    window_hours: str | None = Query(None, alias="windowHours"),
    limit: str | None = Query(None),
    min_visits: str | None = Query(None, alias="minVisits"),
    engine: Engine = Depends(get_engine),
    config: NodeChatConfig = Depends(get_config),
):
    """Rooms ranked by hotness score, best first.

    Parameters arrive as raw strings so malformed or out-of-range values
    fall back to the configured defaults instead of producing a 422.
    """
    defaults = RankingQuery(
        window_hours=config.hot_window_hours,
        limit=config.hot_limit,
        min_visits=config.hot_min_visits,
    )
    query = RankingQuery.from_raw(window_hours, limit, min_visits, defaults=defaults)
    return [room.to_dict() for room in rank_hot_rooms(engine, query)]


# ---------------------------------------------------------------------------
# GET /rooms/{key}/presence
# ---------------------------------------------------------------------------
@router.get("/rooms/{room_key}/presence")
def get_room_presence(
    room_key: str,
    coordinator: SessionCoordinator = Depends(get_coordinator),
):
    """Live connections currently attached to a room (0 for unknown keys)."""
    return {"roomKey": room_key, "online": coordinator.groups.count(room_key)}

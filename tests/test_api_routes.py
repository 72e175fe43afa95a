"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================

Verifies the HTTP surface (health, hot rooms, presence, admin guard) and
one end-to-end WebSocket session through the real app factory.
"""

from __future__ import annotations

import pytest

from nodechat.config import NodeChatConfig
from nodechat.services.identity_service import establish_session
from nodechat.services.message_service import post_message
from nodechat.services.transition_service import record_transition


@pytest.fixture
def seeded(db_engine):
    ann = establish_session(db_engine, "tok-ann", "ann")
    bob = establish_session(db_engine, "tok-bob", "bob")
    record_transition(db_engine, ann.id, "lobby")
    record_transition(db_engine, bob.id, "lobby")
    record_transition(db_engine, ann.id, "hall", from_key="lobby")
    return ann, bob


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Hot rooms
# ===========================================================================
class TestHotRooms:
    def test_empty_log(self, client):
        resp = client.get("/api/hot-rooms")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_ranked_list(self, client, seeded):
        resp = client.get("/api/hot-rooms")
        assert resp.status_code == 200
        body = resp.json()
        assert [r["roomKey"] for r in body] == ["lobby", "hall"]
        assert set(body[0]) == {
            "roomKey", "totalVisits", "uniqueUserCount", "avgDwellSeconds",
            "lastActivity", "createdAt", "score",
        }
        assert body[0]["totalVisits"] == 2
        assert body[0]["uniqueUserCount"] == 2

    def test_min_visits_param(self, client, seeded):
        body = client.get("/api/hot-rooms", params={"minVisits": "2"}).json()
        assert [r["roomKey"] for r in body] == ["lobby"]

    def test_limit_param(self, client, seeded):
        body = client.get("/api/hot-rooms", params={"limit": "1"}).json()
        assert len(body) == 1

    @pytest.mark.parametrize("params", [
        {"windowHours": "abc"},
        {"windowHours": "-4"},
        {"limit": "0"},
        {"limit": "999"},
        {"minVisits": "none"},
    ])
    def test_malformed_params_fall_back(self, client, seeded, params):
        resp = client.get("/api/hot-rooms", params=params)
        assert resp.status_code == 200
        assert [r["roomKey"] for r in resp.json()] == ["lobby", "hall"]

    def test_configured_defaults(self, make_client, seeded):
        client = make_client(NodeChatConfig(hot_limit=1))
        body = client.get("/api/hot-rooms", params={"limit": "junk"}).json()
        assert len(body) == 1

    def test_legacy_path(self, client, seeded):
        resp = client.get("/api/hot-nodes")
        assert resp.status_code == 200
        assert len(resp.json()) == 2


# ===========================================================================
# Presence
# ===========================================================================
class TestPresence:
    def test_unknown_room_is_zero(self, client):
        resp = client.get("/api/rooms/nowhere/presence")
        assert resp.status_code == 200
        assert resp.json() == {"roomKey": "nowhere", "online": 0}


# ===========================================================================
# Admin
# ===========================================================================
class TestAdminReconcile:
    def test_hidden_when_disabled(self, client):
        assert client.post("/api/admin/reconcile").status_code == 404

    def test_runs_when_enabled(self, make_client, db_engine, seeded):
        ann, _ = seeded
        post_message(db_engine, ann.id, "hall", "hi")
        client = make_client(NodeChatConfig(admin_endpoints_enabled=True))
        resp = client.post("/api/admin/reconcile")
        assert resp.status_code == 200
        body = resp.json()
        assert body["checked"] == 2
        assert body["corrected"] == 0


# ===========================================================================
# WebSocket session
# ===========================================================================
class TestWebSocketSession:
    def test_full_session(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "userSetup", "data": {"localToken": "tok-ws", "nickname": "ann"}})
            established = ws.receive_json()
            assert established["event"] == "sessionEstablished"
            user_id = established["data"]["userId"]

            ws.send_json({"event": "joinRoom", "data": {"userId": user_id, "toRoomKey": "lobby"}})
            assert ws.receive_json() == {"event": "history", "data": []}

            presence = client.get("/api/rooms/lobby/presence").json()
            assert presence == {"roomKey": "lobby", "online": 1}

            ws.send_json({
                "event": "sendMessage",
                "data": {"userId": user_id, "roomKey": "lobby", "text": "hello"},
            })
            message = ws.receive_json()
            assert message["event"] == "receiveMessage"
            assert message["data"]["text"] == "hello"
            assert message["data"]["senderNickname"] == "ann"

            ws.send_json({"event": "requestRecommendation", "data": {"roomKey": "lobby"}})
            assert ws.receive_json() == {
                "event": "recommendationResult",
                "data": {"recommendedKey": None},
            }

    def test_bad_frames_do_not_close_socket(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("not json")
            ws.send_json({"event": "teleport", "data": {}})
            ws.send_json({"event": "sendMessage", "data": {"userId": 1, "roomKey": "x", "text": "hi"}})
            ws.send_json({"event": "userSetup", "data": {"localToken": "tok-ws"}})
            assert ws.receive_json()["event"] == "sessionEstablished"

    def test_history_seen_by_second_client(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "userSetup", "data": {"localToken": "tok-a", "nickname": "ann"}})
            uid = ws.receive_json()["data"]["userId"]
            ws.send_json({"event": "joinRoom", "data": {"userId": uid, "toRoomKey": "lobby"}})
            ws.receive_json()
            ws.send_json({"event": "sendMessage", "data": {"userId": uid, "roomKey": "lobby", "text": "first"}})
            ws.receive_json()

        with client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "userSetup", "data": {"localToken": "tok-b", "nickname": "bob"}})
            uid = ws.receive_json()["data"]["userId"]
            ws.send_json({
                "event": "joinNodeAndLogTransition",
                "data": {"userId": uid, "toNodeKey": "lobby"},
            })
            history = ws.receive_json()
            assert history["event"] == "history"
            assert [m["text"] for m in history["data"]] == ["first"]

"""시그널링 릴레이 서버(FastAPI WebSocket) 테스트."""

import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

import routes.deps
from modules.signaling import RoomManager
from routes import health_router, init_signaling_managers, signaling_router


def offer(sender_id: str) -> str:
    return json.dumps({
        "kind": "offer",
        "payload": {"sdp": "v=0", "type": "offer"},
        "senderId": sender_id,
    })


@pytest.fixture
def room_manager():
    manager = RoomManager()
    init_signaling_managers(manager)
    yield manager
    init_signaling_managers(None)


@pytest.fixture
def client(room_manager):
    app = FastAPI()
    app.include_router(health_router)
    app.include_router(signaling_router)
    with TestClient(app) as client:
        yield client


def test_message_is_relayed_to_other_peer_only(client):
    with client.websocket_connect("/ws/room-1?user_id=user_a") as ws_a, \
            client.websocket_connect("/ws/room-1?user_id=user_b") as ws_b:
        ws_a.send_text(offer("user_a"))

        received = ws_b.receive_json()
        assert received["kind"] == "offer"
        assert received["senderId"] == "user_a"
        assert received["payload"] == {"sdp": "v=0", "type": "offer"}

        ws_b.send_text(json.dumps({"kind": "hangup", "senderId": "user_b"}))
        assert ws_a.receive_json()["kind"] == "hangup"


def test_sender_id_is_stamped_by_server(client):
    with client.websocket_connect("/ws/room-1?user_id=user_a") as ws_a, \
            client.websocket_connect("/ws/room-1?user_id=user_b") as ws_b:
        ws_a.send_text(offer("user_b"))
        assert ws_b.receive_json()["senderId"] == "user_a"


def test_invalid_message_returns_error_to_sender(client):
    with client.websocket_connect("/ws/room-1?user_id=user_a") as ws_a:
        ws_a.send_text("{\"kind\": \"ring\"}")
        reply = ws_a.receive_json()
        assert reply["type"] == "error"


def test_rooms_are_listed_and_removed_when_empty(client, room_manager):
    with client.websocket_connect("/ws/room-1") as ws_a, \
            client.websocket_connect("/ws/room-1?user_id=user_b"):
        rooms = client.get("/api/rooms").json()["rooms"]
        assert len(rooms) == 1
        assert rooms[0]["room_id"] == "room-1"
        assert rooms[0]["peer_count"] == 2
        user_ids = sorted(p["user_id"] for p in rooms[0]["peers"])
        assert user_ids[0].startswith("user_")
        assert "user_b" in user_ids

        health = client.get("/api/health").json()
        assert health == {"status": "ok", "rooms": 1, "peers": 2}

    assert room_manager.get_room_list() == []


def test_token_is_required_when_password_set(client, monkeypatch):
    monkeypatch.setattr(routes.deps, "ACCESS_PASSWORD", "secret")

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/room-1?user_id=user_a&token=wrong"):
            pass
    assert exc_info.value.code == 4001

    with client.websocket_connect("/ws/room-1?user_id=user_a&token=secret") as ws:
        ws.send_text("not json")
        assert ws.receive_json()["type"] == "error"


def test_rooms_api_checks_bearer_token(client, monkeypatch):
    monkeypatch.setattr(routes.deps, "ACCESS_PASSWORD", "secret")

    assert client.get("/api/rooms").status_code == 401
    assert client.get("/api/rooms", headers={"Authorization": "Basic secret"}).status_code == 401
    assert client.get("/api/rooms", headers={"Authorization": "Bearer wrong"}).status_code == 401
    assert client.get("/api/rooms", headers={"Authorization": "Bearer secret"}).json() == {"rooms": []}


def test_not_ready_without_room_manager():
    init_signaling_managers(None)
    app = FastAPI()
    app.include_router(health_router)
    app.include_router(signaling_router)
    with TestClient(app) as client:
        assert client.get("/api/health").json()["status"] == "not_ready"
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/room-1"):
                pass
    assert exc_info.value.code == 1011


async def test_broadcast_prunes_broken_sockets():
    class Socket:
        def __init__(self, broken=False):
            self.broken = broken
            self.sent = []

        async def send_json(self, message):
            if self.broken:
                raise RuntimeError("socket closed")
            self.sent.append(message)

    manager = RoomManager()
    sender, good, broken = Socket(), Socket(), Socket(broken=True)
    manager.join_room("room-1", "p1", "user_a", sender)
    manager.join_room("room-1", "p2", "user_b", good)
    manager.join_room("room-1", "p3", "user_c", broken)

    delivered = await manager.broadcast_to_room("room-1", {"kind": "hangup"}, exclude=["p1"])

    assert delivered == 1
    assert good.sent == [{"kind": "hangup"}]
    assert sender.sent == []
    assert manager.get_peer("p3") is None
    assert manager.get_room_count("room-1") == 2
    assert [p.peer_id for p in manager.get_other_peers("room-1", "p1")] == ["p2"]

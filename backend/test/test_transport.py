"""시그널링 전송 계층 테스트 (InMemorySignalingHub, WebSocket 클라이언트)."""

import pytest
import websockets

from modules.shared import SignalingError
from modules.signaling import (
    CandidateMessage,
    HangupMessage,
    InMemorySignalingHub,
    WebSocketSignalingTransport,
)
from modules.webrtc import signaling_config

from conftest import candidate


def collector():
    received = []

    async def on_message(message):
        received.append(message)

    return received, on_message


async def test_publish_skips_sender_and_other_rooms(hub):
    alice_inbox, alice_handler = collector()
    bob_inbox, bob_handler = collector()
    other_inbox, other_handler = collector()
    await hub.subscribe("room-1", alice_handler, subscriber_id="user_alice")
    await hub.subscribe("room-1", bob_handler, subscriber_id="user_bob")
    await hub.subscribe("room-2", other_handler, subscriber_id="user_carol")

    await hub.publish("room-1", HangupMessage(sender_id="user_alice"))
    await hub.drain()

    assert alice_inbox == []
    assert [m.sender_id for m in bob_inbox] == ["user_alice"]
    assert other_inbox == []


async def test_loopback_delivers_to_sender():
    hub = InMemorySignalingHub(loopback=True)
    inbox, handler = collector()
    subscription = await hub.subscribe("room-1", handler, subscriber_id="user_alice")

    await hub.publish("room-1", HangupMessage(sender_id="user_alice"))
    await hub.drain()

    assert len(inbox) == 1
    await subscription.unsubscribe()
    await hub.drain()


async def test_messages_from_one_sender_keep_order(hub):
    inbox, handler = collector()
    await hub.subscribe("room-1", handler, subscriber_id="user_bob")

    for n in range(1, 6):
        await hub.publish("room-1", CandidateMessage(sender_id="user_alice", payload=candidate(n)))
    await hub.drain()

    assert [m.payload for m in inbox] == [candidate(n) for n in range(1, 6)]


async def test_unsubscribe_is_idempotent_and_stops_delivery(hub):
    inbox, handler = collector()
    subscription = await hub.subscribe("room-1", handler, subscriber_id="user_bob")

    await subscription.unsubscribe()
    await subscription.unsubscribe()
    await hub.publish("room-1", HangupMessage(sender_id="user_alice"))
    await hub.drain()

    assert inbox == []
    assert hub.subscriber_count("room-1") == 0
    assert "room-1" not in hub.rooms


async def test_handler_error_does_not_stop_delivery(hub):
    inbox = []

    async def flaky(message):
        if not inbox:
            inbox.append("failed")
            raise RuntimeError("boom")
        inbox.append(message.kind)

    await hub.subscribe("room-1", flaky, subscriber_id="user_bob")
    await hub.publish("room-1", HangupMessage(sender_id="user_alice"))
    await hub.publish("room-1", HangupMessage(sender_id="user_alice"))
    await hub.drain()

    assert inbox == ["failed", "hangup"]


def test_websocket_url_includes_room_user_and_token():
    transport = WebSocketSignalingTransport("ws://relay.local:8000/ws/", token="secret")

    url = transport.build_url("room 1", "user_abc")

    assert url == "ws://relay.local:8000/ws/room%201?user_id=user_abc&token=secret"


def test_websocket_url_without_credentials():
    transport = WebSocketSignalingTransport("ws://relay.local:8000/ws", token="")
    assert transport.build_url("room-1", None) == "ws://relay.local:8000/ws/room-1"


async def test_websocket_publish_without_subscription_fails():
    transport = WebSocketSignalingTransport("ws://relay.local:8000/ws", token="")
    with pytest.raises(SignalingError):
        await transport.publish("room-1", HangupMessage(sender_id="user_abc"))


async def test_websocket_subscribe_to_unreachable_server_fails():
    transport = WebSocketSignalingTransport("ws://127.0.0.1:9/ws", token="")

    async def ignore(message):
        pass

    with pytest.raises(SignalingError):
        await transport.subscribe("room-1", ignore, subscriber_id="user_abc")
    assert transport.subscriptions == {}


async def test_websocket_zero_ping_interval_disables_keepalive(monkeypatch):
    captured = {}

    async def refuse(url, **kwargs):
        captured.update(kwargs)
        raise OSError("connection refused")

    monkeypatch.setattr(websockets, "connect", refuse)
    transport = WebSocketSignalingTransport(
        "ws://relay.local:8000/ws", token="", ping_interval=0, ping_timeout=0
    )
    assert transport.ping_interval == 0
    assert transport.ping_timeout == 0

    async def ignore(message):
        pass

    with pytest.raises(SignalingError):
        await transport.subscribe("room-1", ignore, subscriber_id="user_abc")
    assert captured["ping_interval"] is None
    assert captured["ping_timeout"] is None


def test_websocket_ping_settings_default_to_config():
    transport = WebSocketSignalingTransport("ws://relay.local:8000/ws", token="")

    assert transport.ping_interval == signaling_config.PING_INTERVAL
    assert transport.ping_timeout == signaling_config.PING_TIMEOUT

"""시그널링 메시지 wire format 테스트."""

import json

import pytest
from pydantic import ValidationError

from modules.signaling import (
    CandidateMessage,
    HangupMessage,
    IceCandidate,
    OfferMessage,
    SessionDescription,
    dump_message,
    parse_message,
)


def test_parse_offer_from_json():
    raw = json.dumps({
        "kind": "offer",
        "payload": {"sdp": "v=0", "type": "offer"},
        "senderId": "user_abc",
    })

    message = parse_message(raw)

    assert isinstance(message, OfferMessage)
    assert message.sender_id == "user_abc"
    assert message.payload == SessionDescription(sdp="v=0", type="offer")


def test_parse_candidate_uses_browser_field_names():
    message = parse_message({
        "kind": "candidate",
        "payload": {"candidate": "candidate:1 1 udp 1 10.0.0.1 9 typ host", "sdpMid": "0", "sdpMLineIndex": 0},
        "senderId": "user_abc",
    })

    assert isinstance(message, CandidateMessage)
    assert message.payload.sdp_mid == "0"
    assert message.payload.sdp_mline_index == 0


def test_hangup_payload_is_optional():
    message = parse_message({"kind": "hangup", "senderId": "user_abc"})
    assert isinstance(message, HangupMessage)
    assert message.payload is None


def test_dump_uses_wire_aliases():
    message = CandidateMessage(
        sender_id="user_abc",
        payload=IceCandidate(candidate="candidate:1", sdp_mid="audio", sdp_mline_index=1),
    )

    assert dump_message(message) == {
        "kind": "candidate",
        "payload": {"candidate": "candidate:1", "sdpMid": "audio", "sdpMLineIndex": 1},
        "senderId": "user_abc",
    }


def test_dump_then_parse_keeps_message():
    message = OfferMessage(sender_id="user_abc", payload=SessionDescription(sdp="v=0\r\n", type="offer"))
    assert parse_message(json.dumps(dump_message(message))) == message


@pytest.mark.parametrize("data", [
    {"kind": "ring", "payload": None, "senderId": "user_abc"},
    {"kind": "offer", "payload": {"sdp": "v=0", "type": "offer"}},
    {"kind": "offer", "payload": {"sdp": "v=0", "type": "offer"}, "senderId": ""},
    {"kind": "answer", "payload": {"sdp": "v=0", "type": "bogus"}, "senderId": "user_abc"},
    {"kind": "candidate", "payload": {"sdpMid": "0"}, "senderId": "user_abc"},
    "not json",
])
def test_invalid_messages_are_rejected(data):
    with pytest.raises(ValidationError):
        parse_message(data)


def test_messages_are_immutable():
    message = HangupMessage(sender_id="user_abc")
    with pytest.raises(ValidationError):
        message.sender_id = "user_other"

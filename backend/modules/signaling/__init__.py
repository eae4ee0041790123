"""시그널링 모듈.

offer/answer/ICE candidate/hangup 메시지 정의와 룸 단위 전송 계층을 제공합니다.

Classes:
    InMemorySignalingHub: 프로세스 내부 룸 브로드캐스트 허브
    WebSocketSignalingTransport: 시그널링 릴레이 서버 WebSocket 클라이언트
    RoomManager: 릴레이 서버의 룸 및 참가자 관리
"""

from .messages import (
    AnswerMessage,
    CandidateMessage,
    HangupMessage,
    IceCandidate,
    OfferMessage,
    SessionDescription,
    SignalingMessage,
    dump_message,
    parse_message,
)
from .transport import (
    InMemorySignalingHub,
    InMemorySubscription,
    MessageHandler,
    SignalingTransport,
    Subscription,
)
from .room_manager import Peer, RoomManager
from .websocket_transport import WebSocketSignalingTransport, WebSocketSubscription

__all__ = [
    # Messages
    "AnswerMessage",
    "CandidateMessage",
    "HangupMessage",
    "IceCandidate",
    "OfferMessage",
    "SessionDescription",
    "SignalingMessage",
    "dump_message",
    "parse_message",
    # Transport
    "InMemorySignalingHub",
    "InMemorySubscription",
    "MessageHandler",
    "SignalingTransport",
    "Subscription",
    "WebSocketSignalingTransport",
    "WebSocketSubscription",
    # Relay server
    "Peer",
    "RoomManager",
]

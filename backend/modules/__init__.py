"""Backend modules package.

이 패키지는 룸 기반 1:1 오디오/비디오 통화의 핵심 모듈을 포함합니다.

Modules:
    call: 통화 상태 머신 (CallSession) 및 상태 레코드
    signaling: 시그널링 메시지, 전송 계층, 릴레이 룸 관리
    webrtc: aiortc 연결 엔진, 로컬 미디어 캡처, ICE/미디어 설정
    shared: 모듈 공용 예외
"""

from .shared import CallError, CaptureError, NegotiationError, SignalingError
from .webrtc import (
    AiortcConnectionEngine,
    ConnectivityState,
    PlayerMediaSource,
    ToggleableTrack,
    build_rtc_configuration,
    get_ice_servers,
)
from .signaling import (
    InMemorySignalingHub,
    RoomManager,
    SignalingMessage,
    WebSocketSignalingTransport,
    dump_message,
    parse_message,
)
from .call import CallSession, CallState, Session, generate_user_id


__all__ = [
    # Call
    "CallSession",
    "CallState",
    "Session",
    "generate_user_id",
    # Signaling
    "InMemorySignalingHub",
    "RoomManager",
    "SignalingMessage",
    "WebSocketSignalingTransport",
    "dump_message",
    "parse_message",
    # WebRTC
    "AiortcConnectionEngine",
    "ConnectivityState",
    "PlayerMediaSource",
    "ToggleableTrack",
    "build_rtc_configuration",
    "get_ice_servers",
    # Errors
    "CallError",
    "CaptureError",
    "NegotiationError",
    "SignalingError",
]

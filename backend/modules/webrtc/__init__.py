"""WebRTC 모듈.

연결 엔진(aiortc RTCPeerConnection 래퍼), 로컬 미디어 캡처, 토글 가능한 트랙,
ICE/미디어/시그널링 설정을 제공합니다.

Classes:
    AiortcConnectionEngine: 통화 시도 하나를 담당하는 피어 연결
    PlayerMediaSource: aiortc MediaPlayer 기반 카메라/마이크 소스
    LocalMediaStream: 로컬 캡처 스트림
    RemoteMediaStream: 원격 수신 스트림
    ToggleableTrack: 재협상 없이 on/off 가능한 트랙

Config:
    ice_config: ICE 서버 설정
    media_config: 미디어 캡처 설정
    signaling_config: 시그널링 서버 접속 설정
"""

# config must load first: signaling imports it while this package is initializing
from .config import (
    ice_config,
    media_config,
    signaling_config,
    ICEServerConfig,
    MediaConfig,
    SignalingConfig,
    build_rtc_configuration,
    get_ice_servers,
)
from .tracks import ToggleableTrack
from .media import LocalMediaStream, RemoteMediaStream, MediaSource, PlayerMediaSource
from .engine import AiortcConnectionEngine, ConnectionEngine, ConnectivityState, normalize_state

__all__ = [
    # Classes
    "AiortcConnectionEngine",
    "ConnectionEngine",
    "ConnectivityState",
    "normalize_state",
    "LocalMediaStream",
    "RemoteMediaStream",
    "MediaSource",
    "PlayerMediaSource",
    "ToggleableTrack",
    # Config
    "ice_config",
    "media_config",
    "signaling_config",
    "ICEServerConfig",
    "MediaConfig",
    "SignalingConfig",
    "build_rtc_configuration",
    "get_ice_servers",
]

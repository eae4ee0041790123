"""WebRTC 모듈 설정.

TURN/STUN 서버, 미디어 캡처 기본값, 시그널링 접속 정보 등
환경변수 기반 설정.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import List, Optional

# 환경변수 로드 (상위에서 이미 로드됨)
from dotenv import load_dotenv
from aiortc import RTCConfiguration, RTCIceServer

logger = logging.getLogger(__name__)

_env_path = Path(__file__).parent.parent.parent / "config" / ".env"
load_dotenv(_env_path)


def _parse_bool(value: Optional[str], default: bool = True) -> bool:
    """문자열을 bool로 변환."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


# ============================================================
# ICE Server 설정
# ============================================================

@dataclass(frozen=True)
class ICEServerConfig:
    """ICE 서버 설정."""

    # TURN 서버
    TURN_SERVER_URL: Optional[str] = os.getenv("TURN_SERVER_URL")
    TURN_USERNAME: Optional[str] = os.getenv("TURN_USERNAME")
    TURN_CREDENTIAL: Optional[str] = os.getenv("TURN_CREDENTIAL")

    # STUN 서버
    STUN_SERVER_URL: Optional[str] = os.getenv("STUN_SERVER_URL")

    # 기본 공개 STUN 서버 (fallback)
    DEFAULT_STUN_SERVERS: tuple = (
        "stun:stun.l.google.com:19302",
    )

    @property
    def has_turn_server(self) -> bool:
        """TURN 서버 설정 완료 여부."""
        return all([self.TURN_SERVER_URL, self.TURN_USERNAME, self.TURN_CREDENTIAL])


def get_ice_servers(config: Optional[ICEServerConfig] = None) -> List[dict]:
    """ICE 서버 목록을 브라우저 RTCIceServer 형식의 dict 리스트로 반환합니다.

    STUN 서버는 항상 포함되고, TURN 서버는 URL/계정/비밀번호가
    모두 설정된 경우에만 추가됩니다.

    Args:
        config: ICE 서버 설정 (None이면 전역 ice_config 사용)

    Examples:
        >>> get_ice_servers()
        [{'urls': 'stun:stun.l.google.com:19302'}]
    """
    config = config or ice_config
    ice_servers = []

    # 커스텀 STUN 서버 (우선)
    if config.STUN_SERVER_URL:
        ice_servers.append({"urls": config.STUN_SERVER_URL})

    # Google STUN 서버 (fallback)
    for stun_url in config.DEFAULT_STUN_SERVERS:
        ice_servers.append({"urls": stun_url})

    if config.has_turn_server:
        ice_servers.append({
            "urls": config.TURN_SERVER_URL,
            "username": config.TURN_USERNAME,
            "credential": config.TURN_CREDENTIAL
        })
    else:
        logger.warning("[WebRTC] TURN 서버 설정 없음 - STUN만 사용 (운영 환경에서는 TURN 설정 필요)")

    return ice_servers


def build_rtc_configuration(config: Optional[ICEServerConfig] = None) -> RTCConfiguration:
    """ICE 설정으로 aiortc RTCConfiguration을 생성합니다.

    Returns:
        RTCConfiguration: 피어 연결 생성에 사용할 설정
    """
    ice_servers = [
        RTCIceServer(
            urls=[server["urls"]],
            username=server.get("username"),
            credential=server.get("credential")
        )
        for server in get_ice_servers(config)
    ]
    return RTCConfiguration(iceServers=ice_servers)


# ============================================================
# 미디어 캡처 설정
# ============================================================

@dataclass(frozen=True)
class MediaConfig:
    """로컬 카메라/마이크 캡처 설정."""

    # 기본 캡처 대상
    CAPTURE_AUDIO: bool = _parse_bool(os.getenv("MEDIA_CAPTURE_AUDIO"), default=True)
    CAPTURE_VIDEO: bool = _parse_bool(os.getenv("MEDIA_CAPTURE_VIDEO"), default=True)

    # 비디오 해상도
    VIDEO_WIDTH: int = int(os.getenv("MEDIA_VIDEO_WIDTH", "1280"))
    VIDEO_HEIGHT: int = int(os.getenv("MEDIA_VIDEO_HEIGHT", "720"))
    VIDEO_FRAMERATE: int = int(os.getenv("MEDIA_VIDEO_FRAMERATE", "30"))

    # 장치 (ffmpeg 입력 이름, 예: /dev/video0, default)
    VIDEO_DEVICE: Optional[str] = os.getenv("MEDIA_VIDEO_DEVICE")
    AUDIO_DEVICE: Optional[str] = os.getenv("MEDIA_AUDIO_DEVICE")

    # ffmpeg 입력 포맷 (v4l2, avfoundation, dshow, pulse ...)
    VIDEO_INPUT_FORMAT: Optional[str] = os.getenv("MEDIA_VIDEO_INPUT_FORMAT")
    AUDIO_INPUT_FORMAT: Optional[str] = os.getenv("MEDIA_AUDIO_INPUT_FORMAT")


    @property
    def video_size(self) -> str:
        """ffmpeg video_size 옵션 문자열."""
        return f"{self.VIDEO_WIDTH}x{self.VIDEO_HEIGHT}"


# ============================================================
# 시그널링 설정
# ============================================================

@dataclass(frozen=True)
class SignalingConfig:
    """시그널링 서버 접속 설정."""

    # 릴레이 서버 WebSocket 주소 (룸 ID는 경로에 추가됨)
    SIGNALING_URL: str = os.getenv("SIGNALING_URL", "ws://localhost:8000/ws")

    # 접근 토큰 (서버 ACCESS_PASSWORD와 동일)
    ACCESS_TOKEN: Optional[str] = os.getenv("ACCESS_PASSWORD")

    # WebSocket keepalive
    PING_INTERVAL: float = float(os.getenv("SIGNALING_PING_INTERVAL", "20"))
    PING_TIMEOUT: float = float(os.getenv("SIGNALING_PING_TIMEOUT", "10"))


# ============================================================
# 싱글톤 인스턴스
# ============================================================

ice_config = ICEServerConfig()
media_config = MediaConfig()
signaling_config = SignalingConfig()


# ============================================================
# 설정 로드 확인 로그
# ============================================================

logger.info(f"[WebRTC Config] .env 경로: {_env_path} (존재: {_env_path.exists()})")
logger.info(f"[WebRTC Config] TURN 서버 설정 완료: {ice_config.has_turn_server}")
if ice_config.TURN_SERVER_URL:
    logger.info(f"[WebRTC Config] TURN URL: {ice_config.TURN_SERVER_URL}")
if ice_config.STUN_SERVER_URL:
    logger.info(f"[WebRTC Config] STUN URL: {ice_config.STUN_SERVER_URL}")
else:
    logger.info(f"[WebRTC Config] STUN URL: 기본 Google STUN 사용")
logger.info(f"[WebRTC Config] 캡처 해상도: {media_config.video_size}")
logger.info(f"[WebRTC Config] 시그널링 URL: {signaling_config.SIGNALING_URL}")

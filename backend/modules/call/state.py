"""통화 상태 정의.

CallState와 통화 시도 하나의 상태를 담는 Session 레코드를 정의합니다.
Session은 CallSession만 변경하며, 통화가 끝나면 교체되지 않고 idle 기준값으로
초기화됩니다.
"""

import secrets
import string
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..signaling.messages import IceCandidate, SessionDescription
from ..webrtc.engine import ConnectionEngine
from ..webrtc.media import LocalMediaStream, RemoteMediaStream


class CallState(str, Enum):
    """통화 세션 상태."""

    IDLE = "idle"
    CALLING = "calling"
    RECEIVING = "receiving"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"

    @property
    def description(self) -> str:
        """화면에 표시할 상태 문구."""
        return _DESCRIPTIONS[self]


_DESCRIPTIONS = {
    CallState.IDLE: "Ready to make a call",
    CallState.CALLING: "Calling...",
    CallState.RECEIVING: "Incoming call",
    CallState.CONNECTING: "Connecting...",
    CallState.CONNECTED: "Connected",
    CallState.DISCONNECTED: "Call ended",
    CallState.FAILED: "Connection failed",
}

# 새 통화를 걸거나 offer를 받을 수 있는 상태
CALLABLE_STATES = frozenset({CallState.IDLE, CallState.DISCONNECTED, CallState.FAILED})

# 연결 엔진과 로컬 미디어가 살아있는 상태 (hangup/mute 가능)
ACTIVE_STATES = frozenset({CallState.CALLING, CallState.CONNECTING, CallState.CONNECTED})


@dataclass
class Session:
    """통화 시도 하나의 상태 레코드.

    Attributes:
        room_id (str): 룸 ID (생성 후 불변)
        local_user_id (str): 로컬 사용자 ID (생성 후 불변)
        state (CallState): 현재 통화 상태
        connection (Optional[ConnectionEngine]): 현재 시도의 연결 엔진 (단독 소유)
        local_media (Optional[LocalMediaStream]): 로컬 캡처 스트림 (단독 소유)
        remote_media (Optional[RemoteMediaStream]): 원격 스트림 (참조만 보관)
        remote_offer (Optional[SessionDescription]): 수락 대기 중인 원격 offer
        pending_candidates (List[IceCandidate]): remote description 설정 전 도착한 candidate
        audio_muted (bool): 오디오 트랙 비활성 여부
        video_muted (bool): 비디오 트랙 비활성 여부
        last_error (Optional[str]): 마지막 실패 사유
    """

    room_id: str
    local_user_id: str
    state: CallState = CallState.IDLE
    connection: Optional[ConnectionEngine] = None
    local_media: Optional[LocalMediaStream] = None
    remote_media: Optional[RemoteMediaStream] = None
    remote_offer: Optional[SessionDescription] = None
    pending_candidates: List[IceCandidate] = field(default_factory=list)
    audio_muted: bool = False
    video_muted: bool = False
    last_error: Optional[str] = None

    def snapshot(self) -> Dict[str, Any]:
        """화면 표시용 상태 요약."""
        return {
            "room_id": self.room_id,
            "local_user_id": self.local_user_id,
            "state": self.state.value,
            "status": self.state.description,
            "has_connection": self.connection is not None,
            "has_local_media": self.local_media is not None,
            "has_remote_media": self.remote_media is not None,
            "pending_candidates": len(self.pending_candidates),
            "audio_muted": self.audio_muted,
            "video_muted": self.video_muted,
            "error": self.last_error,
        }


_USER_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_user_id() -> str:
    """룸 방문자용 임의 사용자 ID를 생성합니다 (예: user_k3j9x0a1b2c4d)."""
    return "user_" + "".join(secrets.choice(_USER_ID_ALPHABET) for _ in range(13))

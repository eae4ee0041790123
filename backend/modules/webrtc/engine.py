"""WebRTC 연결 엔진 모듈.

통화 세션이 사용하는 연결 엔진 인터페이스와 aiortc RTCPeerConnection 기반
구현을 제공합니다. 세션은 이 인터페이스만 사용하며 ICE/DTLS/SRTP 처리는
엔진 내부에서 이루어집니다.

Classes:
    ConnectivityState: 정규화된 연결 상태
    ConnectionEngine: 연결 엔진 인터페이스 (Protocol)
    AiortcConnectionEngine: RTCPeerConnection 래퍼

Event Callbacks:
    - on_ice_candidate(candidate): 로컬 ICE candidate 발견 시
    - on_track(track, stream): 원격 미디어 트랙 수신 시
    - on_connection_state_change(state): 연결 상태 변경 시

Note:
    aiortc는 trickle ICE를 지원하지 않으므로 로컬 candidate는
    setLocalDescription 이후 local_description SDP에 모두 포함됩니다.
"""
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol

from aiortc import MediaStreamTrack, RTCConfiguration, RTCPeerConnection, RTCSessionDescription
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

from ..shared import NegotiationError
from ..signaling.messages import IceCandidate, SessionDescription
from .config import build_rtc_configuration
from .media import RemoteMediaStream

logger = logging.getLogger(__name__)


class ConnectivityState(str, Enum):
    """연결 엔진이 보고하는 집계 연결 상태."""

    NEW = "new"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    COMPLETED = "completed"
    DISCONNECTED = "disconnected"
    FAILED = "failed"
    CLOSED = "closed"


# aiortc ICE states -> ConnectivityState
_ICE_STATE_MAP = {
    "new": ConnectivityState.NEW,
    "checking": ConnectivityState.CONNECTING,
    "connected": ConnectivityState.CONNECTED,
    "completed": ConnectivityState.COMPLETED,
    "disconnected": ConnectivityState.DISCONNECTED,
    "failed": ConnectivityState.FAILED,
    "closed": ConnectivityState.CLOSED,
}


def normalize_state(raw_state: str) -> Optional[ConnectivityState]:
    """엔진 고유 상태 문자열을 ConnectivityState로 변환합니다. 모르는 값이면 None."""
    return _ICE_STATE_MAP.get(raw_state)


CandidateCallback = Callable[[IceCandidate], Awaitable[None]]
TrackCallback = Callable[[MediaStreamTrack, RemoteMediaStream], Awaitable[None]]
StateCallback = Callable[[ConnectivityState], Awaitable[None]]


class ConnectionEngine(Protocol):
    """연결 엔진 인터페이스."""

    on_ice_candidate: Optional[CandidateCallback]
    on_track: Optional[TrackCallback]
    on_connection_state_change: Optional[StateCallback]

    @property
    def local_description(self) -> Optional[SessionDescription]:
        ...

    @property
    def remote_description(self) -> Optional[SessionDescription]:
        ...

    async def create_offer(self) -> SessionDescription:
        ...

    async def create_answer(self) -> SessionDescription:
        ...

    async def set_local_description(self, description: SessionDescription) -> None:
        ...

    async def set_remote_description(self, description: SessionDescription) -> None:
        ...

    async def add_ice_candidate(self, candidate: IceCandidate) -> None:
        ...

    def add_track(self, track: MediaStreamTrack) -> None:
        ...

    async def close(self) -> None:
        ...


def _to_model(description: Optional[RTCSessionDescription]) -> Optional[SessionDescription]:
    if description is None:
        return None
    return SessionDescription(sdp=description.sdp, type=description.type)


class AiortcConnectionEngine:
    """aiortc RTCPeerConnection 기반 연결 엔진.

    인스턴스 하나는 통화 시도 하나에만 사용되며, close() 이후 재사용할 수 없습니다.

    Attributes:
        pc (RTCPeerConnection): 내부 피어 연결
        remote_stream (RemoteMediaStream): 수신 트랙을 모으는 원격 스트림
    """

    def __init__(self, configuration: Optional[RTCConfiguration] = None):
        self.pc = RTCPeerConnection(configuration=configuration or build_rtc_configuration())
        self.remote_stream = RemoteMediaStream()
        self.closed = False

        self.on_ice_candidate: Optional[CandidateCallback] = None
        self.on_track: Optional[TrackCallback] = None
        self.on_connection_state_change: Optional[StateCallback] = None

        pc = self.pc

        @pc.on("icecandidate")
        async def on_ice_candidate(candidate):
            """ICE candidate 생성 시 호출되는 이벤트 핸들러."""
            if candidate and self.on_ice_candidate:
                await self.on_ice_candidate(IceCandidate(
                    candidate=f"candidate:{candidate_to_sdp(candidate)}",
                    sdp_mid=candidate.sdpMid,
                    sdp_mline_index=candidate.sdpMLineIndex,
                ))

        @pc.on("iceconnectionstatechange")
        async def on_ice_connection_state_change():
            """ICE 연결 상태 변경 시 호출되는 이벤트 핸들러.

            ICE 상태: new, checking, connected, completed, failed, disconnected, closed
            """
            logger.info(f"[WebRTC] ICE 상태: {pc.iceConnectionState}")
            state = normalize_state(pc.iceConnectionState)
            if state and self.on_connection_state_change:
                await self.on_connection_state_change(state)

        @pc.on("signalingstatechange")
        async def on_signaling_state_change():
            logger.debug(f"[WebRTC] 시그널링 상태: {pc.signalingState}")

        @pc.on("track")
        async def on_track(track: MediaStreamTrack):
            """원격 트랙 수신 시 호출되는 이벤트 핸들러."""
            logger.info(f"[WebRTC] 원격 {track.kind} 트랙 수신")
            self.remote_stream.add_track(track)

            @track.on("ended")
            async def on_ended():
                logger.info(f"[WebRTC] 원격 {track.kind} 트랙 종료")

            if self.on_track:
                await self.on_track(track, self.remote_stream)

    @property
    def local_description(self) -> Optional[SessionDescription]:
        return _to_model(self.pc.localDescription)

    @property
    def remote_description(self) -> Optional[SessionDescription]:
        return _to_model(self.pc.remoteDescription)

    async def create_offer(self) -> SessionDescription:
        try:
            offer = await self.pc.createOffer()
        except Exception as e:
            raise NegotiationError(f"offer 생성 실패: {e}") from e
        return _to_model(offer)

    async def create_answer(self) -> SessionDescription:
        try:
            answer = await self.pc.createAnswer()
        except Exception as e:
            raise NegotiationError(f"answer 생성 실패: {e}") from e
        return _to_model(answer)

    async def set_local_description(self, description: SessionDescription) -> None:
        try:
            await self.pc.setLocalDescription(
                RTCSessionDescription(sdp=description.sdp, type=description.type)
            )
        except Exception as e:
            raise NegotiationError(f"local description 설정 실패 ({description.type}): {e}") from e

        candidate_count = self.pc.localDescription.sdp.count("a=candidate:")
        logger.info(f"[WebRTC] setLocalDescription 완료: gathering={self.pc.iceGatheringState}, 후보수={candidate_count}")

    async def set_remote_description(self, description: SessionDescription) -> None:
        try:
            await self.pc.setRemoteDescription(
                RTCSessionDescription(sdp=description.sdp, type=description.type)
            )
        except Exception as e:
            raise NegotiationError(f"remote description 설정 실패 ({description.type}): {e}") from e
        logger.info(f"[WebRTC] setRemoteDescription 완료: signaling={self.pc.signalingState}")

    async def add_ice_candidate(self, candidate: IceCandidate) -> None:
        """원격 ICE candidate를 추가합니다.

        Raises:
            NegotiationError: remote description이 아직 설정되지 않은 경우
            ValueError: candidate 문자열을 해석할 수 없는 경우
        """
        if self.pc.remoteDescription is None:
            raise NegotiationError("remote description 설정 전에는 ICE candidate를 추가할 수 없습니다")

        sdp = candidate.candidate.strip()
        if not sdp:
            # end-of-candidates
            return
        if sdp.startswith("candidate:"):
            sdp = sdp[len("candidate:"):]

        rtc_candidate = candidate_from_sdp(sdp)
        rtc_candidate.sdpMid = candidate.sdp_mid
        rtc_candidate.sdpMLineIndex = candidate.sdp_mline_index
        await self.pc.addIceCandidate(rtc_candidate)

    def add_track(self, track: MediaStreamTrack) -> None:
        self.pc.addTrack(track)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self.pc.close()
        logger.info("[WebRTC] 피어 연결 종료")

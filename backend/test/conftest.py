"""테스트 공용 fixture.

실제 카메라/네트워크 없이 CallSession을 검증하기 위한 가짜 연결 엔진,
가짜 미디어 소스, 발행 기록용 transport를 제공합니다.
"""

import asyncio
from typing import List, Optional, Set, Tuple

import pytest

from modules.call import CallSession
from modules.shared import CaptureError, NegotiationError
from modules.signaling import IceCandidate, InMemorySignalingHub, SessionDescription
from modules.webrtc import ConnectivityState, LocalMediaStream


class FakeTrack:
    """enabled 플래그와 stop()만 가진 로컬 트랙."""

    def __init__(self, kind: str):
        self.kind = kind
        self.enabled = True
        self.stopped = False

    def stop(self):
        self.stopped = True


class FakeMediaSource:
    """MediaSource 대역.

    Args:
        error: 지정하면 acquire()가 CaptureError를 발생
        gate: 지정하면 acquire()가 이 이벤트를 기다린 뒤 반환
    """

    def __init__(self, error: Optional[str] = None, gate: Optional[asyncio.Event] = None):
        self.error = error
        self.gate = gate
        self.calls: List[Tuple[bool, bool]] = []
        self.streams: List[LocalMediaStream] = []

    async def acquire(self, audio: bool = True, video: bool = True) -> LocalMediaStream:
        self.calls.append((audio, video))
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise CaptureError(self.error)

        tracks = []
        if audio:
            tracks.append(FakeTrack("audio"))
        if video:
            tracks.append(FakeTrack("video"))
        stream = LocalMediaStream(tracks)
        self.streams.append(stream)
        return stream


class FakeEngine:
    """ConnectionEngine 대역. 호출 내역을 기록하고 상태 이벤트를 직접 발생시킵니다."""

    def __init__(self, events: list, fail_on: Set[str], bad_candidates: Set[str]):
        self.events = events
        self.fail_on = fail_on
        self.bad_candidates = bad_candidates

        self.on_ice_candidate = None
        self.on_track = None
        self.on_connection_state_change = None

        self._local: Optional[SessionDescription] = None
        self._remote: Optional[SessionDescription] = None
        self.applied: List[IceCandidate] = []
        self.tracks: list = []
        self.closed = False
        self.close_calls = 0

    def _check(self, operation: str):
        if operation in self.fail_on:
            raise NegotiationError(f"{operation} rejected")

    @property
    def local_description(self) -> Optional[SessionDescription]:
        return self._local

    @property
    def remote_description(self) -> Optional[SessionDescription]:
        return self._remote

    async def create_offer(self) -> SessionDescription:
        self._check("create_offer")
        return SessionDescription(sdp="v=0 fake-offer", type="offer")

    async def create_answer(self) -> SessionDescription:
        self._check("create_answer")
        return SessionDescription(sdp="v=0 fake-answer", type="answer")

    async def set_local_description(self, description: SessionDescription) -> None:
        self._check("set_local_description")
        self._local = description

    async def set_remote_description(self, description: SessionDescription) -> None:
        self._check("set_remote_description")
        self._remote = description

    async def add_ice_candidate(self, candidate: IceCandidate) -> None:
        if self._remote is None:
            raise NegotiationError("remote description not set")
        if candidate.candidate in self.bad_candidates:
            raise ValueError(f"malformed candidate {candidate.candidate}")
        self.applied.append(candidate)

    def add_track(self, track) -> None:
        self.tracks.append(track)

    async def close(self) -> None:
        self.close_calls += 1
        self.closed = True
        self.events.append("engine.close")

    async def emit_state(self, state: ConnectivityState) -> None:
        await self.on_connection_state_change(state)

    async def emit_candidate(self, candidate: IceCandidate) -> None:
        await self.on_ice_candidate(candidate)


class EngineFactory:
    """통화 시도마다 새 FakeEngine을 만들고 목록에 보관합니다."""

    def __init__(self, events: list):
        self.events = events
        self.created: List[FakeEngine] = []
        self.fail_on: Set[str] = set()
        self.bad_candidates: Set[str] = set()

    def __call__(self) -> FakeEngine:
        engine = FakeEngine(self.events, self.fail_on, self.bad_candidates)
        self.created.append(engine)
        return engine


class RecordingTransport:
    """InMemorySignalingHub 앞에서 발행 순서를 기록하는 transport."""

    def __init__(self, hub: InMemorySignalingHub, events: list):
        self.hub = hub
        self.events = events
        self.fail_publish = False
        self.publish_delay = 0.0

    async def subscribe(self, room_id, on_message, subscriber_id=None):
        return await self.hub.subscribe(room_id, on_message, subscriber_id=subscriber_id)

    async def publish(self, room_id, message):
        self.events.append(f"publish.{message.kind}")
        if self.publish_delay:
            await asyncio.sleep(self.publish_delay)
        if self.fail_publish:
            raise ConnectionError("relay unreachable")
        await self.hub.publish(room_id, message)


def candidate(n: int) -> IceCandidate:
    return IceCandidate(
        candidate=f"candidate:{n} 1 udp 2122260223 192.168.0.{n} 5000{n} typ host",
        sdp_mid="0",
        sdp_mline_index=0,
    )


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
async def hub():
    hub = InMemorySignalingHub()
    yield hub
    for subscriptions in list(hub.rooms.values()):
        for subscription in list(subscriptions):
            await subscription.unsubscribe()
    await hub.drain()


@pytest.fixture
def engines(events) -> EngineFactory:
    return EngineFactory(events)


@pytest.fixture
def transport(hub, events) -> RecordingTransport:
    return RecordingTransport(hub, events)


@pytest.fixture
def inbox(hub):
    """룸의 모든 메시지를 받아 보는 관찰자 구독."""

    class Inbox(list):
        async def join(self, room_id: str = "room-1"):
            async def collect(message):
                self.append(message)

            await hub.subscribe(room_id, collect, subscriber_id="observer")

        def kinds(self) -> List[str]:
            return [m.kind for m in self]

    return Inbox()


@pytest.fixture
def make_session(transport, engines):
    """CallSession 생성기. 세션마다 별도의 FakeMediaSource를 사용합니다."""

    def _make(user_id: str = "user_alice", room_id: str = "room-1",
              media_source: Optional[FakeMediaSource] = None) -> CallSession:
        return CallSession(
            room_id,
            user_id,
            transport,
            media_source or FakeMediaSource(),
            engine_factory=engines,
            capture_audio=True,
            capture_video=True,
        )

    return _make

"""1:1 통화 세션 상태 머신.

룸 하나에서 두 참가자 사이의 오디오/비디오 통화를 협상하고 관리합니다.
사용자 동작(call/answer/reject/hangup/mute)과 시그널링 이벤트
(offer/answer/candidate/hangup 수신), 연결 엔진 상태 변경을 하나의
상태 머신으로 조정하며, 모든 종료 경로에서 자원을 정리합니다.

State Transitions:
    idle/disconnected/failed --call()--> calling
    idle/disconnected/failed --offer 수신--> receiving
    receiving --answer()--> connecting
    receiving --reject()--> idle
    calling --answer 수신--> connecting
    calling/connecting --엔진 connected/completed--> connected
    connected --엔진 disconnected--> disconnected (+cleanup)
    calling/connecting/connected --엔진 failed/closed--> failed (+cleanup)
    calling/connecting/connected --hangup()--> idle (+cleanup)
    idle 외 모든 상태 --hangup 수신--> disconnected (+cleanup)

Concurrency:
    - 협상 단계(call, offer 수신, answer, answer 수신)는 _transition_lock으로 직렬화
    - 종료 단계(hangup, reject, hangup 수신, 엔진 실패)는 락을 기다리지 않고 즉시 정리
    - 정리 시 세대(generation) 번호가 바뀌므로, 진행 중이던 비동기 단계가
      나중에 끝나도 결과는 버려짐
    - ICE candidate 수신은 락 없이 처리 (큐 추가 또는 엔진 전달만 수행)

Examples:
    >>> session = CallSession("room-1", "user_a", transport, media_source)
    >>> await session.open()          # 룸 구독 (offer 수신 대기)
    >>> await session.call()          # 발신
    >>> session.toggle_audio()        # 음소거
    >>> await session.hangup()        # 종료
    >>> await session.close()         # 룸 퇴장
"""
import asyncio
import logging
from functools import partial
from typing import Callable, List, NamedTuple, Optional

from aiortc import MediaStreamTrack

from ..signaling.messages import (
    AnswerMessage,
    CandidateMessage,
    HangupMessage,
    IceCandidate,
    OfferMessage,
    SignalingMessage,
)
from ..signaling.transport import SignalingTransport, Subscription
from ..webrtc.config import media_config
from ..webrtc.engine import AiortcConnectionEngine, ConnectionEngine, ConnectivityState
from ..webrtc.media import LocalMediaStream, MediaSource, RemoteMediaStream
from .state import ACTIVE_STATES, CALLABLE_STATES, CallState, Session

logger = logging.getLogger(__name__)

EngineFactory = Callable[[], ConnectionEngine]
StateListener = Callable[[CallState, CallState], None]

# 원격 description 없이 보관할 수 있는 candidate 수 (초과 시 가장 오래된 것부터 폐기)
MAX_PENDING_CANDIDATES = 128


class DetachedResources(NamedTuple):
    """세션에서 떼어낸, 아직 해제되지 않은 자원."""

    local_media: Optional[LocalMediaStream]
    engine: Optional[ConnectionEngine]
    subscription: Optional[Subscription]


class CallSession:
    """룸 하나의 1:1 통화 세션.

    CallState를 변경할 수 있는 유일한 객체이며, 연결 엔진/로컬 미디어/
    candidate 큐/시그널링 구독을 단독으로 소유합니다.

    Attributes:
        session (Session): 현재 통화 시도 상태 레코드
        transport (SignalingTransport): 룸 시그널링 채널
        media_source (MediaSource): 로컬 카메라/마이크 소스
        engine_factory (EngineFactory): 통화 시도마다 새 연결 엔진을 생성
        on_state_change (Optional[StateListener]): 상태 변경 알림 (old, new)
    """

    def __init__(
        self,
        room_id: str,
        local_user_id: str,
        transport: SignalingTransport,
        media_source: MediaSource,
        engine_factory: Optional[EngineFactory] = None,
        capture_audio: Optional[bool] = None,
        capture_video: Optional[bool] = None
    ):
        self.session = Session(room_id=room_id, local_user_id=local_user_id)
        self.transport = transport
        self.media_source = media_source
        self.engine_factory: EngineFactory = engine_factory or AiortcConnectionEngine
        self.capture_audio = media_config.CAPTURE_AUDIO if capture_audio is None else capture_audio
        self.capture_video = media_config.CAPTURE_VIDEO if capture_video is None else capture_video
        self.on_state_change: Optional[StateListener] = None

        self._transition_lock = asyncio.Lock()
        self._subscription_lock = asyncio.Lock()
        self._subscription: Optional[Subscription] = None
        self._generation = 0
        self._candidate_senders: List[str] = []
        self._draining = False
        self._listening = False
        self._closed = False

    # ============================================================
    # 상태 조회
    # ============================================================

    @property
    def state(self) -> CallState:
        return self.session.state

    @property
    def room_id(self) -> str:
        return self.session.room_id

    @property
    def local_user_id(self) -> str:
        return self.session.local_user_id

    @property
    def subscription(self) -> Optional[Subscription]:
        return self._subscription

    def _set_state(self, new_state: CallState) -> None:
        old_state = self.session.state
        if old_state == new_state:
            return
        self.session.state = new_state
        logger.info(f"[Call] {self.local_user_id} 상태 변경: {old_state.value} -> {new_state.value}")
        if self.on_state_change:
            try:
                self.on_state_change(old_state, new_state)
            except Exception as e:
                logger.error(f"[Call] 상태 변경 리스너 오류: {e}", exc_info=True)

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation

    # ============================================================
    # 룸 입장/퇴장
    # ============================================================

    async def open(self) -> None:
        """룸 시그널링을 구독하여 offer를 받을 수 있게 합니다.

        Raises:
            SignalingError: 구독에 실패한 경우
        """
        if self._closed:
            raise RuntimeError("닫힌 CallSession은 다시 열 수 없습니다")
        self._listening = True
        await self._ensure_subscription()

    async def close(self) -> None:
        """룸을 떠납니다. 통화 중이면 hangup/reject 후 구독까지 해제합니다."""
        self._listening = False
        self._closed = True
        if self.state in ACTIVE_STATES:
            await self.hangup()
        elif self.state == CallState.RECEIVING:
            await self.reject()
        await self.cleanup()
        logger.info(f"[Call] {self.local_user_id} 룸 '{self.room_id}' 퇴장")

    async def _ensure_subscription(self) -> None:
        async with self._subscription_lock:
            if self._subscription is not None:
                return
            generation = self._generation
            subscription = await self.transport.subscribe(
                self.room_id, self.handle_message, subscriber_id=self.local_user_id
            )
            if self._is_stale(generation) and not self._listening:
                # Torn down while subscribing and nobody is listening any more
                await subscription.unsubscribe()
                return
            self._subscription = subscription

    # ============================================================
    # 사용자 동작
    # ============================================================

    async def call(self) -> bool:
        """발신: 연결 엔진 생성, 미디어 획득, offer 생성 및 전송.

        Returns:
            bool: 전이가 시작되었으면 True (idle/disconnected/failed 이외 상태에서는 False)
        """
        async with self._transition_lock:
            if self.state not in CALLABLE_STATES:
                logger.info(f"[Call] call 무시 (상태={self.state.value})")
                return False

            generation = self._generation
            self.session.last_error = None
            self._clear_pending_candidates()
            self._set_state(CallState.CALLING)

            try:
                engine = self._create_engine()
                await self._ensure_subscription()
                if self._is_stale(generation):
                    return True

                if not await self._attach_local_media(engine, generation):
                    return True

                offer = await engine.create_offer()
                if self._is_stale(generation):
                    return True
                await engine.set_local_description(offer)
                if self._is_stale(generation):
                    return True

                await self._publish(OfferMessage(
                    sender_id=self.local_user_id,
                    payload=engine.local_description or offer,
                ))
            except Exception as e:
                await self._fail(generation, e)
            return True

    async def answer(self) -> bool:
        """수신 통화 수락: 원격 offer 적용, 미디어 획득, answer 생성 및 전송."""
        async with self._transition_lock:
            offer = self.session.remote_offer
            if self.state != CallState.RECEIVING or offer is None:
                logger.info(f"[Call] answer 무시 (상태={self.state.value})")
                return False

            generation = self._generation
            self._set_state(CallState.CONNECTING)

            try:
                engine = self.session.connection or self._create_engine()
                await self._ensure_subscription()
                if self._is_stale(generation):
                    return True

                await engine.set_remote_description(offer)
                if self._is_stale(generation):
                    return True
                await self._drain_pending_candidates(engine, generation)

                if not await self._attach_local_media(engine, generation):
                    return True

                answer = await engine.create_answer()
                if self._is_stale(generation):
                    return True
                await engine.set_local_description(answer)
                if self._is_stale(generation):
                    return True

                await self._publish(AnswerMessage(
                    sender_id=self.local_user_id,
                    payload=engine.local_description or answer,
                ))
            except Exception as e:
                await self._fail(generation, e)
            return True

    async def reject(self) -> bool:
        """수신 통화 거절: hangup 전송 후 idle로 돌아갑니다."""
        if self.state != CallState.RECEIVING:
            logger.info(f"[Call] reject 무시 (상태={self.state.value})")
            return False

        await self._end_locally()
        return True

    async def hangup(self) -> bool:
        """통화 종료: hangup 전송 후 자원을 정리하고 idle로 돌아갑니다."""
        if self.state not in ACTIVE_STATES:
            logger.info(f"[Call] hangup 무시 (상태={self.state.value})")
            return False

        await self._end_locally()
        return True

    async def _end_locally(self) -> None:
        """idle로 전환하고 자원을 떼어낸 뒤 hangup을 전송하고 해제합니다.

        세션은 첫 await 이전에 초기 상태가 되므로, 전송 중에 들어온
        call()/offer는 새 시도로 처리되고 이전 자원 해제의 영향을 받지 않습니다.
        """
        self._set_state(CallState.IDLE)
        detached = self._detach()
        await self._publish(HangupMessage(sender_id=self.local_user_id))
        await self._release(detached)

    def toggle_audio(self) -> bool:
        """오디오 트랙 on/off. 로컬 미디어가 없으면 아무 것도 하지 않습니다.

        Returns:
            bool: 변경 후 audio_muted 값
        """
        muted = self._toggle_track("audio")
        if muted is not None:
            self.session.audio_muted = muted
        return self.session.audio_muted

    def toggle_video(self) -> bool:
        """비디오 트랙 on/off. 로컬 미디어가 없으면 아무 것도 하지 않습니다."""
        muted = self._toggle_track("video")
        if muted is not None:
            self.session.video_muted = muted
        return self.session.video_muted

    def _toggle_track(self, kind: str) -> Optional[bool]:
        stream = self.session.local_media
        if stream is None:
            return None
        tracks = stream.get_audio_tracks() if kind == "audio" else stream.get_video_tracks()
        if not tracks:
            return None

        track = tracks[0]
        track.enabled = not track.enabled
        logger.info(f"[Call] {kind} {'unmuted' if track.enabled else 'muted'}")
        return not track.enabled

    # ============================================================
    # 시그널링 이벤트
    # ============================================================

    async def handle_message(self, message: SignalingMessage) -> None:
        """시그널링 메시지를 종류별 핸들러로 전달합니다.

        로컬 사용자가 보낸 메시지(에코)는 전송 계층이 되돌려 보내더라도 무시합니다.
        """
        if message.sender_id == self.local_user_id:
            logger.debug(f"[Call] 자신이 보낸 {message.kind} 무시")
            return

        if message.kind == "offer":
            await self._handle_offer(message)
        elif message.kind == "answer":
            await self._handle_answer(message)
        elif message.kind == "candidate":
            await self._handle_candidate(message)
        elif message.kind == "hangup":
            await self._handle_hangup(message)
        else:
            logger.warning(f"[Call] 알 수 없는 메시지 종류: {message.kind}")

    async def _handle_offer(self, message: OfferMessage) -> None:
        async with self._transition_lock:
            if self.state not in CALLABLE_STATES:
                logger.info(f"[Call] offer 무시 (상태={self.state.value}, sender={message.sender_id})")
                return
            self.session.last_error = None
            self._drop_foreign_candidates(message.sender_id)
            self.session.remote_offer = message.payload
            self._set_state(CallState.RECEIVING)
            logger.info(f"[Call] {message.sender_id}의 수신 통화")

    async def _handle_answer(self, message: AnswerMessage) -> None:
        async with self._transition_lock:
            engine = self.session.connection
            if self.state != CallState.CALLING or engine is None:
                logger.info(f"[Call] answer 무시 (상태={self.state.value})")
                return

            generation = self._generation
            self._set_state(CallState.CONNECTING)
            try:
                await engine.set_remote_description(message.payload)
                if self._is_stale(generation):
                    return
                await self._drain_pending_candidates(engine, generation)
            except Exception as e:
                await self._fail(generation, e)

    async def _handle_candidate(self, message: CandidateMessage) -> None:
        candidate = message.payload
        engine = self.session.connection

        # Decided per candidate: buffer whenever no remote description is applied yet
        if engine is None or engine.remote_description is None or self._draining:
            self._buffer_candidate(message.sender_id, candidate)
            return

        await self._apply_candidate(engine, candidate)

    async def _handle_hangup(self, message: HangupMessage) -> None:
        if self.state == CallState.IDLE:
            logger.debug("[Call] idle 상태의 hangup 무시")
            return
        logger.info(f"[Call] {message.sender_id}가 통화를 종료함")
        self._set_state(CallState.DISCONNECTED)
        await self.cleanup()

    # ============================================================
    # 연결 엔진 이벤트
    # ============================================================

    async def _on_engine_state(self, engine: ConnectionEngine, state: ConnectivityState) -> None:
        if engine is not self.session.connection:
            logger.debug(f"[Call] 폐기된 엔진의 상태 이벤트 무시: {state.value}")
            return

        if state in (ConnectivityState.CONNECTED, ConnectivityState.COMPLETED):
            if self.state in (CallState.CALLING, CallState.CONNECTING):
                self._set_state(CallState.CONNECTED)

        elif state == ConnectivityState.DISCONNECTED:
            if self.state == CallState.CONNECTED:
                self._set_state(CallState.DISCONNECTED)
                await self.cleanup()

        elif state in (ConnectivityState.FAILED, ConnectivityState.CLOSED):
            if self.state in ACTIVE_STATES:
                logger.warning(f"[Call] 연결 엔진 {state.value} - 통화 실패 처리")
                self._set_state(CallState.FAILED)
                await self.cleanup()

    async def _on_local_candidate(self, engine: ConnectionEngine, candidate: IceCandidate) -> None:
        if engine is not self.session.connection:
            return
        await self._publish(CandidateMessage(sender_id=self.local_user_id, payload=candidate))

    async def _on_remote_track(
        self,
        engine: ConnectionEngine,
        track: MediaStreamTrack,
        stream: RemoteMediaStream
    ) -> None:
        if engine is not self.session.connection:
            return
        self.session.remote_media = stream
        logger.info(f"[Call] 원격 {track.kind} 트랙 연결")

    # ============================================================
    # 내부 동작
    # ============================================================

    def _create_engine(self) -> ConnectionEngine:
        engine = self.engine_factory()
        engine.on_ice_candidate = partial(self._on_local_candidate, engine)
        engine.on_track = partial(self._on_remote_track, engine)
        engine.on_connection_state_change = partial(self._on_engine_state, engine)
        self.session.connection = engine
        logger.info(f"[Call] 새 연결 엔진 생성 (room={self.room_id})")
        return engine

    async def _attach_local_media(self, engine: ConnectionEngine, generation: int) -> bool:
        """로컬 미디어를 획득해 엔진에 추가합니다. 중간에 정리되었으면 False."""
        stream = await self.media_source.acquire(audio=self.capture_audio, video=self.capture_video)
        if self._is_stale(generation):
            logger.info("[Call] 정리 이후 획득된 미디어 해제")
            stream.stop()
            return False

        self.session.local_media = stream
        for track in stream.get_tracks():
            engine.add_track(track)
        return True

    async def _drain_pending_candidates(self, engine: ConnectionEngine, generation: int) -> None:
        """버퍼링된 candidate를 도착 순서대로 적용합니다."""
        pending = self.session.pending_candidates
        if not pending:
            return

        logger.info(f"[Call] 대기 중인 ICE candidate {len(pending)}개 적용")
        self._draining = True
        try:
            while pending and not self._is_stale(generation):
                self._candidate_senders.pop(0)
                await self._apply_candidate(engine, pending.pop(0))
        finally:
            self._draining = False

    def _buffer_candidate(self, sender_id: str, candidate: IceCandidate) -> None:
        pending = self.session.pending_candidates
        if len(pending) >= MAX_PENDING_CANDIDATES:
            logger.warning(f"[Call] candidate 대기열 가득 참 ({MAX_PENDING_CANDIDATES}개) - 가장 오래된 항목 폐기")
            pending.pop(0)
            self._candidate_senders.pop(0)
        pending.append(candidate)
        self._candidate_senders.append(sender_id)
        logger.debug(f"[Call] ICE candidate 버퍼링 (대기 {len(pending)}개)")

    def _drop_foreign_candidates(self, sender_id: str) -> None:
        """offer 발신자가 아닌 참가자에게서 온 대기 candidate를 버립니다."""
        pending = self.session.pending_candidates
        kept = [(s, c) for s, c in zip(self._candidate_senders, pending) if s == sender_id]
        if len(kept) == len(pending):
            return
        logger.info(f"[Call] 이전 통화의 ICE candidate {len(pending) - len(kept)}개 폐기")
        pending[:] = [c for _, c in kept]
        self._candidate_senders[:] = [s for s, _ in kept]

    def _clear_pending_candidates(self) -> None:
        self.session.pending_candidates.clear()
        self._candidate_senders.clear()

    async def _apply_candidate(self, engine: ConnectionEngine, candidate: IceCandidate) -> None:
        try:
            await engine.add_ice_candidate(candidate)
            logger.debug("[Call] ICE candidate 추가")
        except Exception as e:
            # A minority of failed candidates does not break connectivity
            logger.warning(f"[Call] ICE candidate 추가 실패: {e}")

    async def _publish(self, message: SignalingMessage) -> None:
        try:
            await self.transport.publish(self.room_id, message)
            logger.info(f"[Call] {message.kind} 전송")
        except Exception as e:
            logger.warning(f"[Call] {message.kind} 전송 실패 (재시도 안 함): {e}")

    async def _fail(self, generation: int, error: Exception) -> None:
        if self._is_stale(generation):
            logger.info(f"[Call] 정리된 시도의 오류 무시: {error}")
            return

        message = str(error) or type(error).__name__
        logger.error(f"[Call] 통화 실패 ({type(error).__name__}): {message}")
        self._set_state(CallState.FAILED)
        await self.cleanup()
        self.session.last_error = message

    async def cleanup(self) -> None:
        """통화 자원을 모두 정리합니다. 어떤 상태에서든 여러 번 호출해도 안전합니다.

        Cleanup Steps:
            1. 로컬 트랙 중지, local_media 해제
            2. remote_media 참조 해제 (중지하지 않음)
            3. 연결 엔진 종료 및 폐기
            4. 시그널링 구독 해제
            5. candidate 큐/offer/음소거 플래그/오류 초기화

        Note:
            - 각 단계는 앞 단계가 실패해도 계속 진행됨
            - 세대 번호가 바뀌므로 진행 중이던 비동기 단계의 결과는 버려짐
            - 세션이 열려 있으면(open) 새 구독으로 다시 offer를 기다림
        """
        await self._release(self._detach())

    def _detach(self) -> DetachedResources:
        """세션 필드를 초기값으로 되돌리고 해제할 자원을 넘겨받습니다 (await 없음)."""
        session = self.session
        self._generation += 1
        self._draining = False

        detached = DetachedResources(
            local_media=session.local_media,
            engine=session.connection,
            subscription=self._subscription,
        )
        session.local_media = None
        session.remote_media = None
        session.connection = None
        self._subscription = None
        self._clear_pending_candidates()
        session.remote_offer = None
        session.audio_muted = False
        session.video_muted = False
        session.last_error = None
        return detached

    async def _release(self, detached: DetachedResources) -> None:
        local_media, engine, subscription = detached

        if local_media is not None:
            try:
                local_media.stop()
            except Exception as e:
                logger.warning(f"[Call] 로컬 미디어 중지 실패: {e}")

        # Engine closes before the subscription goes away so no callback outlives teardown
        if engine is not None:
            try:
                await engine.close()
            except Exception as e:
                logger.warning(f"[Call] 연결 엔진 종료 실패: {e}")

        if subscription is not None:
            try:
                await subscription.unsubscribe()
            except Exception as e:
                logger.warning(f"[Call] 시그널링 구독 해제 실패: {e}")

        if local_media or engine or subscription:
            logger.info(f"[Call] {self.local_user_id} 자원 정리 완료 (상태={self.state.value})")

        if self._listening and not self._closed:
            try:
                await self._ensure_subscription()
            except Exception as e:
                logger.warning(f"[Call] 룸 재구독 실패: {e}")

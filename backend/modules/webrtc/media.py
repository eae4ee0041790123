"""로컬/원격 미디어 스트림 모듈.

카메라와 마이크를 여는 미디어 소스 인터페이스와 aiortc MediaPlayer 기반
구현, 그리고 통화 세션이 다루는 스트림 핸들을 제공합니다.

Classes:
    LocalMediaStream: 세션이 소유하는 로컬 캡처 스트림 (트랙 on/off, 중지)
    RemoteMediaStream: 연결 엔진이 전달하는 원격 스트림 (참조만 보관)
    MediaSource: 미디어 소스 인터페이스 (Protocol)
    PlayerMediaSource: ffmpeg 장치/파일을 여는 MediaPlayer 기반 구현
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from aiortc import MediaStreamTrack
from aiortc.contrib.media import MediaPlayer

from ..shared import CaptureError
from .config import MediaConfig, media_config
from .tracks import ToggleableTrack

logger = logging.getLogger(__name__)


class LocalMediaStream:
    """로컬 캡처 트랙 묶음.

    세션이 단독으로 소유하며 cleanup 시 stop()으로 모든 트랙을 중지합니다.
    """

    def __init__(self, tracks: List[MediaStreamTrack], stream_id: Optional[str] = None):
        self.id = stream_id or str(uuid.uuid4())
        self.tracks = list(tracks)

    def get_tracks(self) -> List[MediaStreamTrack]:
        return list(self.tracks)

    def get_audio_tracks(self) -> List[MediaStreamTrack]:
        return [t for t in self.tracks if t.kind == "audio"]

    def get_video_tracks(self) -> List[MediaStreamTrack]:
        return [t for t in self.tracks if t.kind == "video"]

    def stop(self) -> None:
        """모든 트랙을 중지합니다. 한 트랙이 실패해도 나머지는 계속 중지합니다."""
        for track in self.tracks:
            try:
                track.stop()
                logger.info(f"[Media] {track.kind} 트랙 중지")
            except Exception as e:
                logger.warning(f"[Media] {track.kind} 트랙 중지 실패: {e}")


@dataclass
class RemoteMediaStream:
    """원격 피어에게서 수신한 트랙 묶음."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    tracks: List[MediaStreamTrack] = field(default_factory=list)

    def add_track(self, track: MediaStreamTrack) -> None:
        self.tracks.append(track)


class MediaSource(Protocol):
    """로컬 카메라/마이크 캡처 인터페이스."""

    async def acquire(self, audio: bool = True, video: bool = True) -> LocalMediaStream:
        ...


class PlayerMediaSource:
    """aiortc MediaPlayer로 카메라/마이크를 여는 미디어 소스.

    MEDIA_VIDEO_DEVICE / MEDIA_AUDIO_DEVICE 에 ffmpeg 입력 이름(장치 또는 파일)을,
    MEDIA_*_INPUT_FORMAT 에 입력 포맷(v4l2, pulse, avfoundation 등)을 지정합니다.

    Raises:
        CaptureError: 요청한 장치가 설정되지 않았거나 열 수 없는 경우
    """

    def __init__(self, config: Optional[MediaConfig] = None):
        self.config = config or media_config

    def _open_player(self, device: str, input_format: Optional[str], options: dict) -> MediaPlayer:
        return MediaPlayer(device, format=input_format, options=options)

    async def acquire(self, audio: bool = True, video: bool = True) -> LocalMediaStream:
        logger.info(f"[Media] 미디어 요청 - audio={audio}, video={video}")
        tracks: List[MediaStreamTrack] = []

        try:
            if video:
                tracks.append(await self._open_track(
                    "video",
                    self.config.VIDEO_DEVICE,
                    self.config.VIDEO_INPUT_FORMAT,
                    {
                        "video_size": self.config.video_size,
                        "framerate": str(self.config.VIDEO_FRAMERATE),
                    },
                ))
            if audio:
                tracks.append(await self._open_track(
                    "audio",
                    self.config.AUDIO_DEVICE,
                    self.config.AUDIO_INPUT_FORMAT,
                    {},
                ))
        except CaptureError:
            # Release whatever was opened before the failure
            LocalMediaStream(tracks).stop()
            raise

        return LocalMediaStream(tracks)

    async def _open_track(
        self,
        kind: str,
        device: Optional[str],
        input_format: Optional[str],
        options: dict
    ) -> ToggleableTrack:
        if not device:
            raise CaptureError(f"{kind} 캡처 장치가 설정되지 않았습니다 (MEDIA_{kind.upper()}_DEVICE)")

        try:
            player = await asyncio.to_thread(self._open_player, device, input_format, options)
        except Exception as e:
            logger.error(f"[Media] {kind} 장치 열기 실패 ({device}): {e}")
            raise CaptureError(f"{kind} 장치에 접근할 수 없습니다: {e}") from e

        source = player.video if kind == "video" else player.audio
        if source is None:
            # Stopping the remaining tracks lets the player close its container
            for track in (player.audio, player.video):
                if track is not None:
                    track.stop()
            raise CaptureError(f"{device}에 {kind} 스트림이 없습니다")

        logger.info(f"[Media] {kind} 장치 열기 완료: {device}")
        return ToggleableTrack(source, kind=kind)

"""로컬 미디어 트랙 모듈.

카메라/마이크 트랙을 감싸 재협상 없이 켜고 끌 수 있는 트랙을 제공합니다.
꺼진 동안에도 프레임 타이밍은 유지하고 내용만 무음/검은 화면으로 바꿉니다.
"""

import logging
from typing import Optional

import numpy as np
from aiortc import MediaStreamTrack
from av import AudioFrame, VideoFrame

logger = logging.getLogger(__name__)


class ToggleableTrack(MediaStreamTrack):
    """enabled 플래그로 송출 내용을 제어하는 트랙.

    원본 트랙에서 프레임을 계속 받아오므로 RTP 타임스탬프가 끊기지 않으며,
    enabled=False인 동안에는 같은 크기/타이밍의 무음 또는 검은 프레임을 보냅니다.

    Attributes:
        kind (str): 트랙 종류 ("audio" 또는 "video")
        source (MediaStreamTrack): 원본 캡처 트랙
        enabled (bool): False면 무음/검은 화면 송출

    Examples:
        >>> track = ToggleableTrack(player.audio)
        >>> track.enabled = False  # 음소거
        >>> frame = await track.recv()  # 무음 프레임
    """

    def __init__(self, source: MediaStreamTrack, kind: Optional[str] = None):
        super().__init__()
        self.kind = kind or source.kind
        self.source = source
        self.enabled = True

    async def recv(self):
        frame = await self.source.recv()
        if self.enabled:
            return frame

        if not hasattr(self, "_muted_logged"):
            logger.debug(f"[Media] {self.kind} 트랙 비활성 상태 - 대체 프레임 송출")
            self._muted_logged = True

        if self.kind == "audio":
            return self._silence(frame)
        return self._black(frame)

    @staticmethod
    def _silence(frame: AudioFrame) -> AudioFrame:
        silent = AudioFrame(format=frame.format.name, layout=frame.layout.name, samples=frame.samples)
        for plane in silent.planes:
            plane.update(bytes(plane.buffer_size))
        silent.sample_rate = frame.sample_rate
        silent.pts = frame.pts
        silent.time_base = frame.time_base
        return silent

    @staticmethod
    def _black(frame: VideoFrame) -> VideoFrame:
        black = VideoFrame.from_ndarray(
            np.zeros((frame.height, frame.width, 3), dtype=np.uint8), format="rgb24"
        )
        black.pts = frame.pts
        black.time_base = frame.time_base
        return black

    def stop(self):
        """원본 트랙까지 함께 중지합니다. 이미 중지된 트랙이어도 안전합니다."""
        super().stop()
        self.source.stop()

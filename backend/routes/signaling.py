"""통화 시그널링 릴레이 WebSocket 라우터.

룸 단위로 offer/answer/candidate/hangup 메시지를 같은 룸의 다른 참가자에게
중계합니다. 서버는 메시지 내용을 해석하지 않고 형식 검증과 발신자 ID 기록만
수행하며, 통화 상태는 각 클라이언트의 CallSession이 관리합니다.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from modules.call import generate_user_id
from modules.signaling import RoomManager, dump_message, parse_message
from .deps import verify_auth_header, verify_ws_token

logger = logging.getLogger(__name__)

router = APIRouter()

# 글로벌 매니저 참조 (app.py에서 설정됨)
_room_manager: Optional[RoomManager] = None


def init_managers(room_manager: RoomManager):
    """매니저 인스턴스를 초기화합니다.

    app.py에서 호출하여 글로벌 매니저 참조를 설정합니다.

    Args:
        room_manager: RoomManager 인스턴스
    """
    global _room_manager
    _room_manager = room_manager
    logger.info("[Signaling] 릴레이 라우터 매니저 초기화 완료")


def get_room_manager() -> Optional[RoomManager]:
    return _room_manager


@router.websocket("/ws/{room_id}")
async def websocket_endpoint(
    websocket: WebSocket,
    room_id: str,
    user_id: Optional[str] = Query(None),
    token: Optional[str] = Query(None)
):
    """룸 시그널링 릴레이 WebSocket 엔드포인트.

    연결 하나가 룸 참가자 하나이며, 연결이 끊기면 룸에서 자동 퇴장합니다.
    수신한 메시지는 senderId를 이 연결의 user_id로 덮어쓴 뒤
    발신자를 제외한 룸의 모든 참가자에게 전달됩니다.

    Args:
        websocket: FastAPI WebSocket 연결 객체
        room_id: 참가할 룸 ID (경로 파라미터)
        user_id: 참가자 사용자 ID (없으면 user_<random> 발급)
        token: 인증 토큰 (쿼리 파라미터)

    Note:
        - 형식이 잘못된 메시지는 중계하지 않고 발신자에게 error 메시지로 응답
        - 전송 실패한 수신자는 broadcast 중 룸에서 제거됨
    """
    if _room_manager is None:
        logger.error("[Signaling] 매니저가 초기화되지 않음")
        await websocket.close(code=1011, reason="Server not ready")
        return

    # 연결 수락 전 토큰 검증
    if not verify_ws_token(token):
        await websocket.close(code=4001, reason="Unauthorized")
        return

    await websocket.accept()

    peer_id = str(uuid.uuid4())
    user_id = user_id or generate_user_id()
    _room_manager.join_room(room_id, peer_id, user_id, websocket)

    try:
        while True:
            raw = await websocket.receive_text()

            try:
                message = parse_message(raw)
            except ValidationError as e:
                logger.warning(f"[Signaling] {user_id}의 잘못된 메시지 무시: {e.error_count()}개 오류")
                await websocket.send_json({
                    "type": "error",
                    "data": {"message": "Invalid signaling message"}
                })
                continue

            # 다른 참가자 행세를 막기 위해 발신자는 연결 기준으로 기록
            if message.sender_id != user_id:
                message = message.model_copy(update={"sender_id": user_id})

            delivered = await _room_manager.broadcast_to_room(
                room_id, dump_message(message), exclude=[peer_id]
            )
            logger.debug(f"[Signaling] {message.kind} 중계: {user_id} -> {delivered}명 (room={room_id})")

    except WebSocketDisconnect:
        logger.info(f"[Signaling] {user_id} ({peer_id}) 연결 종료")
    except Exception as e:
        logger.error(f"[Signaling] {user_id} ({peer_id}) WebSocket 오류: {e}", exc_info=True)
    finally:
        _room_manager.leave_room(peer_id)


@router.get("/api/rooms")
async def get_rooms_api(_: bool = Depends(verify_auth_header)):
    """활성화된 모든 룸의 목록을 조회합니다.

    Returns:
        dict: {"rooms": [{"room_id", "peer_count", "peers"}, ...]}
    """
    if _room_manager is None:
        return {"rooms": []}
    return {"rooms": _room_manager.get_room_list()}

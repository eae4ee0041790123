"""Health Check API 라우터.

릴레이 서버 상태와 룸 통계를 확인하는 엔드포인트를 제공합니다.
"""

from fastapi import APIRouter

from .signaling import get_room_manager

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("")
async def health_check():
    """릴레이 서버 상태를 확인합니다.

    Returns:
        dict: 서버 상태와 룸/참가자 수
            - status: "ok" 또는 "not_ready" (RoomManager 미초기화)
            - rooms: 활성 룸 수
            - peers: 접속 중인 참가자 수
    """
    room_manager = get_room_manager()
    if room_manager is None:
        return {"status": "not_ready", "rooms": 0, "peers": 0}

    return {
        "status": "ok",
        "rooms": len(room_manager.rooms),
        "peers": len(room_manager.peer_to_room),
    }

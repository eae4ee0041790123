"""룸 기반 시그널링 참가자 관리 모듈.

시그널링 릴레이 서버에서 룸(방)과 접속자(WebSocket 연결)를 관리합니다.
같은 룸에 접속한 다른 참가자에게 시그널링 메시지를 중계할 때 사용됩니다.

주요 기능:
    - 룸 생성 및 삭제 (자동 생성/비어있을 때 자동 삭제)
    - 참가자 입장/퇴장 관리
    - 발신자를 제외한 룸 브로드캐스트
    - 룸 상태 조회 (참가자 수, 참가자 정보)

Architecture:
    - rooms: Dict[str, Dict[str, Peer]] - 룸 ID → 연결 ID → 참가자
    - peer_to_room: Dict[str, str] - 연결 ID → 룸 ID (빠른 조회용)

Examples:
    >>> manager = RoomManager()
    >>> manager.join_room("room-1", "conn-1", "user_abc", websocket)
    >>> await manager.broadcast_to_room("room-1", {"kind": "hangup", ...}, exclude=["conn-1"])
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)


@dataclass
class Peer:
    """룸에 접속한 시그널링 참가자.

    Attributes:
        peer_id (str): WebSocket 연결마다 발급되는 고유 ID (UUID)
        user_id (str): 클라이언트가 사용하는 사용자 ID (메시지 senderId)
        websocket (WebSocket): 참가자와의 WebSocket 연결 객체
    """
    peer_id: str
    user_id: str
    websocket: WebSocket


class RoomManager:
    """시그널링 룸과 참가자를 관리하는 클래스.

    Thread Safety:
        - asyncio 환경에서 단일 스레드로 동작
    """

    def __init__(self):
        # room_id -> {peer_id: Peer}
        self.rooms: Dict[str, Dict[str, Peer]] = {}

        # peer_id -> room_id (for quick lookup)
        self.peer_to_room: Dict[str, str] = {}

    def join_room(self, room_id: str, peer_id: str, user_id: str, websocket: WebSocket) -> None:
        """참가자를 룸에 추가합니다. 룸이 없으면 생성합니다."""
        if room_id not in self.rooms:
            self.rooms[room_id] = {}
            logger.info(f"Room '{room_id}' created")

        self.rooms[room_id][peer_id] = Peer(peer_id=peer_id, user_id=user_id, websocket=websocket)
        self.peer_to_room[peer_id] = room_id

        logger.info(f"Peer '{user_id}' ({peer_id}) joined room '{room_id}'. "
                    f"Room has {len(self.rooms[room_id])} peers")

    def leave_room(self, peer_id: str) -> Optional[str]:
        """참가자를 룸에서 제거합니다.

        Returns:
            Optional[str]: 참가자가 속해있던 룸 ID. 속한 룸이 없으면 None

        Note:
            - 마지막 참가자가 퇴장하면 룸이 자동으로 삭제됨
        """
        room_id = self.peer_to_room.pop(peer_id, None)
        if not room_id:
            return None

        peers = self.rooms.get(room_id, {})
        peer = peers.pop(peer_id, None)

        if not peers:
            self.rooms.pop(room_id, None)
            logger.info(f"Room '{room_id}' deleted (empty)")
        elif peer:
            logger.info(f"Peer '{peer.user_id}' ({peer_id}) left room '{room_id}'. "
                        f"Room has {len(peers)} peers")
        return room_id

    def get_room_peers(self, room_id: str) -> List[Peer]:
        return list(self.rooms.get(room_id, {}).values())

    def get_other_peers(self, room_id: str, exclude_peer_id: str) -> List[Peer]:
        """특정 연결을 제외한 룸의 다른 참가자 목록."""
        return [peer for peer in self.get_room_peers(room_id) if peer.peer_id != exclude_peer_id]

    def get_peer(self, peer_id: str) -> Optional[Peer]:
        room_id = self.peer_to_room.get(peer_id)
        if room_id:
            return self.rooms.get(room_id, {}).get(peer_id)
        return None

    def get_room_count(self, room_id: str) -> int:
        return len(self.rooms.get(room_id, {}))

    def get_room_list(self) -> List[dict]:
        """모든 룸의 ID, 참가자 수, 참가자 정보를 반환합니다."""
        return [
            {
                "room_id": room_id,
                "peer_count": len(peers),
                "peers": [{"peer_id": p.peer_id, "user_id": p.user_id}
                          for p in peers.values()]
            }
            for room_id, peers in self.rooms.items()
        ]

    async def broadcast_to_room(self, room_id: str, message: dict, exclude: Optional[List[str]] = None) -> int:
        """룸의 참가자들에게 메시지를 전송합니다.

        전송에 실패한 참가자는 연결이 끊긴 것으로 보고 룸에서 제거합니다.

        Args:
            room_id: 메시지를 전송할 룸 ID
            message: 전송할 메시지 딕셔너리
            exclude: 메시지를 받지 않을 peer_id 리스트

        Returns:
            int: 전송에 성공한 참가자 수
        """
        exclude = exclude or []
        delivered = 0
        disconnected = []

        for peer in self.get_room_peers(room_id):
            if peer.peer_id in exclude:
                continue
            try:
                await peer.websocket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.error(f"피어 {peer.peer_id}에 브로드캐스트 중 오류: {e}")
                disconnected.append(peer.peer_id)

        # 연결 끊긴 피어 정리
        for peer_id in disconnected:
            self.leave_room(peer_id)

        return delivered

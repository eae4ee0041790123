"""FastAPI 1:1 Call Signaling Relay Server.

이 모듈은 룸 기반 1:1 오디오/비디오 통화를 위한 시그널링 릴레이 서버를
제공합니다. 통화 협상 자체는 각 클라이언트의 CallSession이 수행하고,
서버는 같은 룸의 참가자 사이에서 시그널링 메시지만 중계합니다.

주요 기능:
    - 룸 기반 참가자 관리 (빈 룸 자동 삭제)
    - offer/answer/candidate/hangup 메시지 중계 (발신자 제외)
    - 메시지 형식 검증 및 발신자 ID 기록
    - 브라우저/클라이언트용 ICE 서버 설정 제공
    - CORS 설정을 통한 크로스 오리진 요청 지원

Architecture:
    - RoomManager: 룸 및 참가자(WebSocket 연결) 상태 관리
    - WebSocket /ws/{room_id}: 실시간 시그널링 메시지 중계
"""
import logging
import os
import glob
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware

# Load 환경변수 from config/.env (modules import 전에 로드)
load_dotenv(Path(__file__).parent / "config" / ".env")

from modules.signaling import RoomManager
from modules.webrtc import get_ice_servers
from routes import (
    health_router, signaling_router, init_signaling_managers,
    verify_auth_header
)


# 로그 설정
os.makedirs("logs", exist_ok=True)
log_filename = f"logs/server_{datetime.now().strftime('%Y%m%d')}.log"

# 환경별 로그 레벨 설정 (환경변수로 제어)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ENV = os.getenv("ENV", "development")

# 로그 보관 기간 (일) - 기본 60일
LOG_RETENTION_DAYS = int(os.getenv("LOG_RETENTION_DAYS", "60"))


def cleanup_old_logs(log_dir: str = "logs", retention_days: int = LOG_RETENTION_DAYS) -> int:
    """보관 기간이 지난 server_YYYYMMDD.log 파일을 삭제합니다.

    Args:
        log_dir: 로그 디렉토리 경로
        retention_days: 보관 기간 (일)

    Returns:
        삭제된 파일 수
    """
    if not os.path.exists(log_dir):
        return 0

    cutoff_date = datetime.now() - timedelta(days=retention_days)
    deleted_count = 0

    for log_file in glob.glob(os.path.join(log_dir, "server_*.log")):
        try:
            date_str = os.path.basename(log_file)[len("server_"):-len(".log")]
            if datetime.strptime(date_str, "%Y%m%d") < cutoff_date:
                os.remove(log_file)
                deleted_count += 1
        except (ValueError, OSError):
            continue

    return deleted_count


logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.StreamHandler(),  # 콘솔 출력
        logging.FileHandler(log_filename, encoding="utf-8"),  # 파일 저장
    ]
)
logger = logging.getLogger(__name__)
logger.info(f"로깅 초기화 완료: level={LOG_LEVEL}, env={ENV}")


# 글로벌 매니저 인스턴스
room_manager = RoomManager()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI 앱의 생명주기를 관리하는 컨텍스트 매니저.

    Note:
        - 시작: 오래된 로그 정리
        - 종료: 남아있는 참가자 WebSocket 연결 종료
    """
    logger.info("통화 시그널링 릴레이 서버 시작 중...")

    deleted_logs = cleanup_old_logs()
    if deleted_logs > 0:
        logger.info(f"오래된 로그 파일 {deleted_logs}개 정리 완료 ({LOG_RETENTION_DAYS}일 이상)")

    yield

    logger.info("서버 종료 중...")
    for room in room_manager.get_room_list():
        for peer_info in room["peers"]:
            peer = room_manager.get_peer(peer_info["peer_id"])
            if peer is None:
                continue
            try:
                await peer.websocket.close(code=1001, reason="Server shutdown")
            except Exception as e:
                logger.debug(f"종료 중 WebSocket 닫기 실패 ({peer.peer_id}): {e}")
            room_manager.leave_room(peer.peer_id)


app = FastAPI(title="1:1 Call Signaling Relay", lifespan=lifespan)

# CORS - 개발 환경에서는 로컬 네트워크 허용
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"^http://(localhost|127\.0\.0\.1|192\.168\.\d{1,3}\.\d{1,3}|172\.\d{1,3}\.\d{1,3}\.\d{1,3}):\d+$|^https://.*\.ngrok(-free)?\.(app|dev|io)$|^https://.*\.trycloudflare\.com$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 라우터 등록
app.include_router(health_router)
app.include_router(signaling_router)

# WebSocket 시그널링 라우터에 매니저 인스턴스 전달
init_signaling_managers(room_manager)


@app.get("/")
async def root():
    """서버 상태 확인 엔드포인트 (Health check).

    Returns:
        dict: {"status": "ok", "service": "1:1 Call Signaling Relay"}
    """
    return {"status": "ok", "service": "1:1 Call Signaling Relay"}


@app.get("/api/turn-credentials")
async def get_turn_credentials(_: bool = Depends(verify_auth_header)):
    """ICE 서버(STUN/TURN) 설정을 클라이언트에 제공합니다.

    TURN 계정 정보는 서버 환경변수에서만 관리하고, 인증된 클라이언트에게만
    RTCIceServer 형식으로 전달합니다.

    Returns:
        list: ICE servers 배열 (STUN + 설정된 경우 TURN)

    Environment Variables:
        TURN_SERVER_URL, TURN_USERNAME, TURN_CREDENTIAL, STUN_SERVER_URL (선택)

    Examples:
        [
            {"urls": "stun:stun.l.google.com:19302"},
            {"urls": "turn:turn.example.com:3478", "username": "...", "credential": "..."}
        ]
    """
    return get_ice_servers()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")), log_level=LOG_LEVEL.lower())

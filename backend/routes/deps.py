"""공유 의존성 모듈.

릴레이 서버 라우터들이 공통으로 사용하는 접근 토큰 검증을 정의합니다.
ACCESS_PASSWORD가 비어 있으면 모든 요청을 허용합니다.
"""

import hmac
from typing import Optional

from fastapi import Header, HTTPException

from modules.webrtc import signaling_config

# 접근 비밀번호 (클라이언트 transport의 token과 동일한 값)
ACCESS_PASSWORD = signaling_config.ACCESS_TOKEN or ""


def _matches(token: Optional[str]) -> bool:
    return token is not None and hmac.compare_digest(token, ACCESS_PASSWORD)


async def verify_auth_header(authorization: Optional[str] = Header(None)) -> bool:
    """Authorization: Bearer <password> 헤더를 검증합니다.

    Raises:
        HTTPException: 헤더가 없거나 형식/비밀번호가 틀린 경우 (401)
    """
    if not ACCESS_PASSWORD:
        return True
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Invalid authorization format")
    if not _matches(token):
        raise HTTPException(status_code=401, detail="Invalid password")
    return True


def verify_ws_token(token: Optional[str]) -> bool:
    """WebSocket 쿼리 파라미터 token을 검증합니다."""
    if not ACCESS_PASSWORD:
        return True
    return _matches(token)

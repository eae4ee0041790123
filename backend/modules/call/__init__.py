"""통화 세션 모듈.

1:1 통화 상태 머신(CallSession)과 상태 레코드(Session, CallState)를 제공합니다.

Classes:
    CallSession: 통화 협상/종료를 관리하는 상태 머신
    Session: 통화 시도 하나의 상태 레코드
    CallState: 통화 상태
"""

from .state import (
    ACTIVE_STATES,
    CALLABLE_STATES,
    CallState,
    Session,
    generate_user_id,
)
from .session import CallSession, EngineFactory, StateListener

__all__ = [
    "ACTIVE_STATES",
    "CALLABLE_STATES",
    "CallState",
    "CallSession",
    "EngineFactory",
    "Session",
    "StateListener",
    "generate_user_id",
]

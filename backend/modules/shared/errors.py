"""통화 세션 예외 정의.

미디어, 연결 엔진, 시그널링 경계에서 발생하는 오류를 구분합니다.
CallSession은 액션 경계에서 이 예외들을 잡아 상태 전이로 변환합니다.
"""


class CallError(Exception):
    """통화 세션 관련 오류의 기본 클래스."""


class CaptureError(CallError):
    """카메라/마이크 접근이 거부되었거나 장치가 없을 때 발생."""


class NegotiationError(CallError):
    """offer/answer 생성 또는 session description 설정 실패."""


class SignalingError(CallError):
    """시그널링 메시지 발행/구독 실패."""

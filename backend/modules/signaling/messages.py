"""시그널링 메시지 정의.

offer/answer/candidate/hangup 네 종류의 메시지를 ``kind`` 필드로 구분되는
tagged union으로 정의합니다. session description과 ICE candidate 내용은
연결 엔진으로 그대로 전달되는 불투명한 값입니다.

Wire format:
    {"kind": "offer", "payload": {"sdp": "...", "type": "offer"}, "senderId": "user_abc"}
    {"kind": "candidate", "payload": {"candidate": "candidate:...", "sdpMid": "0", "sdpMLineIndex": 0}, "senderId": "user_abc"}
    {"kind": "hangup", "payload": null, "senderId": "user_abc"}
"""

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class SessionDescription(BaseModel):
    """SDP session description (offer 또는 answer)."""

    sdp: str = Field(description="Session Description Protocol 본문")
    type: Literal["offer", "answer", "pranswer", "rollback"]


class IceCandidate(BaseModel):
    """원격 피어가 발견한 ICE candidate."""

    model_config = ConfigDict(populate_by_name=True)

    candidate: str = Field(description="a=candidate 라인 (접두사 'candidate:' 포함 가능)")
    sdp_mid: Optional[str] = Field(default=None, alias="sdpMid")
    sdp_mline_index: Optional[int] = Field(default=None, alias="sdpMLineIndex")


class _Envelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    sender_id: str = Field(alias="senderId", min_length=1)


class OfferMessage(_Envelope):
    kind: Literal["offer"] = "offer"
    payload: SessionDescription


class AnswerMessage(_Envelope):
    kind: Literal["answer"] = "answer"
    payload: SessionDescription


class CandidateMessage(_Envelope):
    kind: Literal["candidate"] = "candidate"
    payload: IceCandidate


class HangupMessage(_Envelope):
    kind: Literal["hangup"] = "hangup"
    payload: None = None


SignalingMessage = Annotated[
    Union[OfferMessage, AnswerMessage, CandidateMessage, HangupMessage],
    Field(discriminator="kind"),
]

_message_adapter: TypeAdapter = TypeAdapter(SignalingMessage)


def parse_message(data: Union[str, bytes, dict]) -> SignalingMessage:
    """JSON 문자열 또는 dict를 시그널링 메시지로 변환합니다.

    Raises:
        pydantic.ValidationError: kind가 알 수 없거나 payload 형식이 잘못된 경우
    """
    if isinstance(data, (str, bytes)):
        return _message_adapter.validate_json(data)
    return _message_adapter.validate_python(data)


def dump_message(message: SignalingMessage) -> Dict[str, Any]:
    """시그널링 메시지를 wire format dict로 변환합니다."""
    return message.model_dump(mode="json", by_alias=True)

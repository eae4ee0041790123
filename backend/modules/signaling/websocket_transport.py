"""WebSocket 시그널링 전송 모듈.

시그널링 릴레이 서버(app.py의 /ws/{room_id})에 WebSocket으로 접속하여
SignalingTransport 인터페이스를 제공합니다. 룸마다 하나의 연결을 사용하며,
구독 해제 시 연결도 함께 종료됩니다.

Connection URL:
    {SIGNALING_URL}/{room_id}?user_id={subscriber_id}&token={ACCESS_TOKEN}

Examples:
    >>> transport = WebSocketSignalingTransport("ws://localhost:8000/ws")
    >>> sub = await transport.subscribe("room-1", on_message, subscriber_id="user_a")
    >>> await transport.publish("room-1", offer_message)
    >>> await sub.unsubscribe()
"""
import asyncio
import json
import logging
from typing import Dict, Optional
from urllib.parse import quote, urlencode

import websockets
from pydantic import ValidationError

from ..shared import SignalingError
from ..webrtc.config import signaling_config
from .messages import SignalingMessage, dump_message, parse_message
from .transport import MessageHandler

logger = logging.getLogger(__name__)


class WebSocketSubscription:
    """룸 하나에 대한 WebSocket 연결과 수신 태스크."""

    def __init__(
        self,
        transport: "WebSocketSignalingTransport",
        room_id: str,
        ws,
        on_message: MessageHandler
    ):
        self.transport = transport
        self.room_id = room_id
        self.ws = ws
        self.on_message = on_message
        self.active = True
        self._task = asyncio.create_task(self._receive_loop())

    async def _receive_loop(self):
        """서버에서 오는 메시지를 순서대로 핸들러에 전달합니다."""
        try:
            async for raw in self.ws:
                if not self.active:
                    break
                try:
                    message = parse_message(raw)
                except ValidationError as e:
                    logger.warning(f"[Signaling] 잘못된 메시지 무시 (room={self.room_id}): {e.error_count()}개 오류")
                    continue

                try:
                    await self.on_message(message)
                except Exception as e:
                    logger.error(f"[Signaling] 메시지 핸들러 오류 (kind={message.kind}): {e}", exc_info=True)

        except websockets.exceptions.ConnectionClosed as e:
            if self.active:
                logger.warning(f"[Signaling] 시그널링 연결 끊김 (room={self.room_id}): {e}")
        except asyncio.CancelledError:
            logger.debug(f"[Signaling] 수신 태스크 취소됨 (room={self.room_id})")
            raise
        finally:
            self.transport._forget(self)

    async def send(self, message: SignalingMessage) -> None:
        try:
            await self.ws.send(json.dumps(dump_message(message)))
        except websockets.exceptions.ConnectionClosed as e:
            raise SignalingError(f"시그널링 연결이 닫혀 {message.kind} 전송 실패: {e}") from e

    async def unsubscribe(self) -> None:
        """연결을 닫고 수신 태스크를 정리합니다. 여러 번 호출해도 안전합니다."""
        if not self.active:
            return
        self.active = False
        self.transport._forget(self)

        # Closing the socket ends the receive loop; an in-flight handler runs to completion
        try:
            await self.ws.close()
        except Exception as e:
            logger.warning(f"[Signaling] WebSocket 종료 중 오류 (room={self.room_id}): {e}")

        logger.info(f"[Signaling] 룸 '{self.room_id}' 구독 해제")


class WebSocketSignalingTransport:
    """시그널링 릴레이 서버 WebSocket 클라이언트.

    Attributes:
        base_url (str): 릴레이 서버 WebSocket 주소 (룸 ID 제외)
        token (Optional[str]): 접근 토큰
        subscriptions (Dict[str, WebSocketSubscription]): 룸 ID → 활성 구독
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        ping_interval: Optional[float] = None,
        ping_timeout: Optional[float] = None
    ):
        self.base_url = (base_url or signaling_config.SIGNALING_URL).rstrip("/")
        self.token = token if token is not None else signaling_config.ACCESS_TOKEN
        self.ping_interval = signaling_config.PING_INTERVAL if ping_interval is None else ping_interval
        self.ping_timeout = signaling_config.PING_TIMEOUT if ping_timeout is None else ping_timeout
        self.subscriptions: Dict[str, WebSocketSubscription] = {}

    def build_url(self, room_id: str, subscriber_id: Optional[str]) -> str:
        params = {}
        if subscriber_id:
            params["user_id"] = subscriber_id
        if self.token:
            params["token"] = self.token
        url = f"{self.base_url}/{quote(room_id, safe='')}"
        if params:
            url = f"{url}?{urlencode(params)}"
        return url

    async def subscribe(
        self,
        room_id: str,
        on_message: MessageHandler,
        subscriber_id: Optional[str] = None
    ) -> WebSocketSubscription:
        existing = self.subscriptions.get(room_id)
        if existing:
            await existing.unsubscribe()

        try:
            ws = await websockets.connect(
                self.build_url(room_id, subscriber_id),
                # 0 disables keepalive
                ping_interval=self.ping_interval or None,
                ping_timeout=self.ping_timeout or None
            )
        except (OSError, websockets.exceptions.WebSocketException) as e:
            raise SignalingError(f"시그널링 서버 연결 실패 ({self.base_url}): {e}") from e

        subscription = WebSocketSubscription(self, room_id, ws, on_message)
        self.subscriptions[room_id] = subscription
        logger.info(f"[Signaling] 룸 '{room_id}' 구독 (subscriber={subscriber_id})")
        return subscription

    async def publish(self, room_id: str, message: SignalingMessage) -> None:
        subscription = self.subscriptions.get(room_id)
        if subscription is None:
            raise SignalingError(f"룸 '{room_id}' 구독 없이 {message.kind} 발행 불가")
        await subscription.send(message)
        logger.debug(f"[Signaling] {message.kind} 발행: room={room_id}")

    def _forget(self, subscription: WebSocketSubscription) -> None:
        if self.subscriptions.get(subscription.room_id) is subscription:
            del self.subscriptions[subscription.room_id]

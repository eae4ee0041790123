"""시그널링 전송 계층.

룸 ID로 구분되는 publish/subscribe 채널의 인터페이스와
같은 프로세스 안에서 동작하는 메모리 기반 구현을 제공합니다.

Classes:
    SignalingTransport: 시그널링 채널 인터페이스 (Protocol)
    Subscription: 구독 해제 핸들 인터페이스 (Protocol)
    InMemorySignalingHub: 프로세스 내부 룸 브로드캐스트 허브
    InMemorySubscription: InMemorySignalingHub 구독 핸들

Delivery Rules:
    - 발신자 본인에게는 전달하지 않음 (loopback=True로 생성하면 본인에게도 전달)
    - 구독자별 큐로 순서대로 전달 (같은 발신자의 메시지 순서 보장)
    - 핸들러 예외는 로그만 남기고 다음 메시지 전달을 계속함

Examples:
    >>> hub = InMemorySignalingHub()
    >>> sub = await hub.subscribe("room-1", on_message, subscriber_id="user_a")
    >>> await hub.publish("room-1", HangupMessage(sender_id="user_b"))
    >>> await hub.drain()
    >>> await sub.unsubscribe()
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Protocol

from .messages import SignalingMessage

logger = logging.getLogger(__name__)

MessageHandler = Callable[[SignalingMessage], Awaitable[None]]


class Subscription(Protocol):
    """시그널링 구독 핸들."""

    room_id: str

    async def unsubscribe(self) -> None:
        ...


class SignalingTransport(Protocol):
    """룸 단위 시그널링 채널."""

    async def subscribe(
        self,
        room_id: str,
        on_message: MessageHandler,
        subscriber_id: Optional[str] = None
    ) -> Subscription:
        ...

    async def publish(self, room_id: str, message: SignalingMessage) -> None:
        ...


class InMemorySubscription:
    """InMemorySignalingHub 구독 핸들.

    구독자마다 전용 큐와 전달 태스크를 가지며, unsubscribe() 이후에는
    남은 메시지도 전달하지 않습니다.
    """

    def __init__(
        self,
        hub: "InMemorySignalingHub",
        room_id: str,
        on_message: MessageHandler,
        subscriber_id: Optional[str]
    ):
        self.hub = hub
        self.room_id = room_id
        self.subscriber_id = subscriber_id
        self.on_message = on_message
        self.queue: asyncio.Queue = asyncio.Queue()
        self.pending = 0
        self.active = True
        self._task = asyncio.create_task(self._deliver_loop())

    async def _deliver_loop(self):
        while True:
            message = await self.queue.get()
            try:
                if message is None:
                    return
                if self.active:
                    await self.on_message(message)
            except Exception as e:
                logger.error(
                    f"[Signaling] 메시지 핸들러 오류 (room={self.room_id}, kind={message.kind}): {e}",
                    exc_info=True
                )
            finally:
                self.pending -= 1
                self.queue.task_done()

    def deliver(self, message: SignalingMessage) -> None:
        if self.active:
            self.pending += 1
            self.queue.put_nowait(message)

    async def unsubscribe(self) -> None:
        """구독을 해제합니다. 여러 번 호출해도 안전합니다.

        전달 중인 핸들러는 취소하지 않고 끝까지 실행되며,
        아직 전달되지 않은 메시지는 버려집니다.
        """
        if not self.active:
            return
        self.active = False
        self.hub._remove(self)

        # Undelivered messages are dropped; the sentinel stops the loop
        self.pending += 1
        self.queue.put_nowait(None)
        logger.debug(f"[Signaling] 구독 해제: room={self.room_id}, subscriber={self.subscriber_id}")


class InMemorySignalingHub:
    """같은 프로세스 안의 룸 브로드캐스트 허브.

    Attributes:
        rooms (Dict[str, List[InMemorySubscription]]): 룸 ID → 구독 목록
        loopback (bool): True면 발신자 본인 구독에도 메시지 전달
    """

    def __init__(self, loopback: bool = False):
        self.rooms: Dict[str, List[InMemorySubscription]] = {}
        self.loopback = loopback
        # every subscription whose delivery task may still be running
        self._subscriptions: List[InMemorySubscription] = []

    async def subscribe(
        self,
        room_id: str,
        on_message: MessageHandler,
        subscriber_id: Optional[str] = None
    ) -> InMemorySubscription:
        subscription = InMemorySubscription(self, room_id, on_message, subscriber_id)
        self.rooms.setdefault(room_id, []).append(subscription)
        self._subscriptions.append(subscription)
        logger.info(
            f"[Signaling] 룸 '{room_id}' 구독: subscriber={subscriber_id}, "
            f"구독자 수={len(self.rooms[room_id])}"
        )
        return subscription

    async def publish(self, room_id: str, message: SignalingMessage) -> None:
        subscribers = list(self.rooms.get(room_id, []))
        delivered = 0
        for subscription in subscribers:
            if not self.loopback and subscription.subscriber_id == message.sender_id:
                continue
            subscription.deliver(message)
            delivered += 1
        logger.debug(f"[Signaling] {message.kind} 발행: room={room_id}, 수신자={delivered}")

    async def drain(self) -> None:
        """모든 구독자 큐가 비워질 때까지 대기합니다.

        핸들러가 다른 구독자에게 새 메시지를 발행할 수 있으므로
        남은 메시지가 없을 때까지 반복합니다. 이미 해제된 구독도
        실행 중인 핸들러가 끝날 때까지 기다립니다.
        """
        while True:
            self._subscriptions = [
                sub for sub in self._subscriptions if sub.active or sub.pending
            ]
            busy = [sub for sub in self._subscriptions if sub.pending]
            if not busy:
                return
            for subscription in busy:
                await subscription.queue.join()

    def subscriber_count(self, room_id: str) -> int:
        return len(self.rooms.get(room_id, []))

    def _remove(self, subscription: InMemorySubscription) -> None:
        subscribers = self.rooms.get(subscription.room_id)
        if not subscribers or subscription not in subscribers:
            return
        subscribers.remove(subscription)
        if not subscribers:
            del self.rooms[subscription.room_id]

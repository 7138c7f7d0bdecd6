"""NotificationHub -- 内存中通知广播器

每个订阅者持有一个 asyncio.Queue，按接收者（员工 / 负责人）分组。
实现 veoflow.core.store.protocols.Notifier，供 AssignmentGuard / ReclaimService
在事务提交后投递通知；SSE 路由订阅后实时推送。
"""

import asyncio
from collections import defaultdict
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import BaseModel, Field
from ulid import ULID

from veoflow.core.models import NotificationKind

log = structlog.get_logger()


class Notification(BaseModel):
    """一条通知"""

    notification_id: str = Field(default_factory=lambda: str(ULID()))
    recipient: str
    kind: NotificationKind
    payload: dict[str, Any] = Field(default_factory=dict)
    ts: datetime = Field(default_factory=lambda: datetime.now(UTC))


class NotificationHub:
    """通知广播器 -- 基于 asyncio.Queue 的发布/订阅模式"""

    def __init__(self, queue_maxsize: int = 100) -> None:
        # recipient -> set of asyncio.Queue
        self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)
        self._queue_maxsize = queue_maxsize

    def subscriber_count(self, recipient: str) -> int:
        return len(self._subscribers.get(recipient, ()))

    async def subscribe(self, recipient: str) -> asyncio.Queue:
        """订阅指定接收者的通知

        Returns:
            asyncio.Queue 实例，新通知会被推送到此队列
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_maxsize)
        self._subscribers[recipient].add(queue)
        return queue

    async def unsubscribe(self, recipient: str, queue: asyncio.Queue) -> None:
        self._subscribers[recipient].discard(queue)
        if not self._subscribers[recipient]:
            del self._subscribers[recipient]

    async def notify(
        self,
        recipient: str,
        kind: NotificationKind,
        payload: dict[str, Any],
    ) -> None:
        """向接收者的所有订阅者广播通知

        无订阅者时通知被丢弃；队列已满的订阅者视为失联并移除。
        """
        notification = Notification(recipient=recipient, kind=kind, payload=payload)
        dead_queues = []
        for queue in self._subscribers.get(recipient, set()):
            try:
                queue.put_nowait(notification)
            except asyncio.QueueFull:
                dead_queues.append(queue)

        for q in dead_queues:
            self._subscribers[recipient].discard(q)
        if dead_queues:
            log.warning(
                "notification_subscriber_dropped",
                recipient=recipient,
                dropped=len(dead_queues),
            )
        if recipient in self._subscribers and not self._subscribers[recipient]:
            del self._subscribers[recipient]

        log.info(
            "notification_sent",
            recipient=recipient,
            kind=kind.value,
            item_id=payload.get("item_id"),
        )

"""SSE 通知流路由

GET /api/stream/notifications/{recipient}: 实时推送发给 recipient 的通知，
SSE_HEARTBEAT_INTERVAL 秒无通知时发送心跳注释保活。
"""

import asyncio

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from veoflow.core.config import SSE_HEARTBEAT_INTERVAL

from ..deps import get_notification_hub
from ..services.notification_hub import Notification, NotificationHub

router = APIRouter()


def notification_to_sse(notification: Notification) -> dict:
    """将 Notification 转换为 SSE 消息"""
    return {
        "id": notification.notification_id,
        "event": notification.kind.value,
        "data": notification.model_dump_json(),
    }


@router.get("/api/stream/notifications/{recipient}")
async def stream_notifications(
    recipient: str,
    hub: NotificationHub = Depends(get_notification_hub),
):
    queue = await hub.subscribe(recipient)

    async def event_generator():
        try:
            while True:
                try:
                    notification = await asyncio.wait_for(
                        queue.get(), timeout=SSE_HEARTBEAT_INTERVAL
                    )
                    yield notification_to_sse(notification)
                except TimeoutError:
                    yield {"comment": "heartbeat"}
        finally:
            await hub.unsubscribe(recipient, queue)

    return EventSourceResponse(event_generator())

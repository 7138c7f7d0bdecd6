"""通知广播与 SSE 测试

测试内容：
1. NotificationHub 订阅 / 广播 / 取消订阅
2. 队列已满的订阅者被移除
3. notification_to_sse 格式
4. 通过 API 分配、回收后订阅者收到通知
"""

import asyncio
import json

from httpx import AsyncClient

from veoflow.core.models import NotificationKind
from veoflow.gateway.routes.stream import notification_to_sse
from veoflow.gateway.services.notification_hub import Notification, NotificationHub


class TestNotificationHub:
    async def test_subscribe_notify_unsubscribe(self):
        hub = NotificationHub()
        queue = await hub.subscribe("alice")
        assert hub.subscriber_count("alice") == 1

        await hub.notify("alice", NotificationKind.ITEM_ASSIGNED, {"item_id": "i-1"})
        received = await asyncio.wait_for(queue.get(), timeout=2.0)
        assert received.recipient == "alice"
        assert received.kind == NotificationKind.ITEM_ASSIGNED
        assert received.payload == {"item_id": "i-1"}

        await hub.unsubscribe("alice", queue)
        assert hub.subscriber_count("alice") == 0

    async def test_other_recipients_not_notified(self):
        hub = NotificationHub()
        bob = await hub.subscribe("bob")
        await hub.notify("alice", NotificationKind.ITEM_ASSIGNED, {})
        assert bob.empty()

    async def test_notify_without_subscribers(self):
        hub = NotificationHub()
        await hub.notify("nobody", NotificationKind.ITEM_RECLAIMED, {"item_id": "i-1"})
        assert hub.subscriber_count("nobody") == 0

    async def test_full_queue_dropped(self):
        hub = NotificationHub(queue_maxsize=1)
        slow = await hub.subscribe("alice")
        await hub.notify("alice", NotificationKind.ITEM_ASSIGNED, {"n": 1})
        await hub.notify("alice", NotificationKind.ITEM_ASSIGNED, {"n": 2})

        assert hub.subscriber_count("alice") == 0
        assert slow.qsize() == 1


class TestSseFormat:
    def test_notification_to_sse(self):
        notification = Notification(
            recipient="alice",
            kind=NotificationKind.ITEM_RECLAIMED,
            payload={"item_id": "i-1"},
        )
        message = notification_to_sse(notification)
        assert message["id"] == notification.notification_id
        assert message["event"] == "ITEM_RECLAIMED"
        data = json.loads(message["data"])
        assert data["recipient"] == "alice"
        assert data["payload"] == {"item_id": "i-1"}


class TestApiNotifications:
    async def test_assign_and_reclaim_notify(self, client: AsyncClient, test_app, seed_item):
        hub = test_app.state.notification_hub
        alice = await hub.subscribe("alice")
        owner = await hub.subscribe("manager-1")

        item_id = (await client.post("/api/items", json={"owner": "manager-1"})).json()["item"][
            "item_id"
        ]
        await client.post(f"/api/items/{item_id}/assign", json={"staff_id": "alice"})
        assigned = await asyncio.wait_for(alice.get(), timeout=2.0)
        assert assigned.kind == NotificationKind.ITEM_ASSIGNED
        assert assigned.payload["item_id"] == item_id

        stale = await seed_item(staff="alice", minutes_ago=30)
        await client.post("/api/reclaim/sweep")
        reclaimed = await asyncio.wait_for(alice.get(), timeout=2.0)
        assert reclaimed.kind == NotificationKind.ITEM_RECLAIMED
        assert reclaimed.payload["item_id"] == stale.item_id
        to_owner = await asyncio.wait_for(owner.get(), timeout=2.0)
        assert to_owner.payload["item_id"] == stale.item_id

    async def test_rejection_sends_nothing(self, client: AsyncClient, test_app):
        hub = test_app.state.notification_hub
        queue = await hub.subscribe("alice")
        await client.post("/api/items/01JNONEXISTENT000000000000/assign", json={"staff_id": "alice"})
        assert queue.empty()

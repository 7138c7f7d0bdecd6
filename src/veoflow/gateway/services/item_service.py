"""ItemService -- 最小条目存储的创建 / 查询 / 软删除

分配相关字段不在这里修改：分配与生命周期流转归 AssignmentGuard，
超时回收归 ReclaimService。
"""

from datetime import UTC, datetime

import structlog
from ulid import ULID

from veoflow.core.models import AuditEntry, WorkItem
from veoflow.core.store import StoreGroup, write_transaction

log = structlog.get_logger()


class ItemService:
    """条目业务服务"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group

    async def create_item(
        self,
        title: str = "",
        owner: str | None = None,
        due_at: datetime | None = None,
    ) -> WorkItem:
        now = datetime.now(UTC)
        item = WorkItem(
            item_id=str(ULID()),
            title=title,
            owner=owner,
            due_at=due_at,
            created_at=now,
            updated_at=now,
        )
        async with write_transaction(self._stores, "create_item"):
            await self._stores.item_store.create_item(item)
        log.info("item_created", item_id=item.item_id, owner=owner)
        return item

    async def get_item(self, item_id: str) -> WorkItem | None:
        """查询未删除的条目"""
        item = await self._stores.item_store.get_item(item_id)
        if item is None or item.deleted:
            return None
        return item

    async def delete_item(self, item_id: str) -> bool:
        """软删除；条目不存在或已删除返回 False"""
        async with write_transaction(self._stores, "delete_item"):
            deleted = await self._stores.item_store.soft_delete(item_id, datetime.now(UTC))
        if deleted:
            log.info("item_deleted", item_id=item_id)
        return deleted

    async def audit_trail(self, item_id: str) -> list[AuditEntry] | None:
        """条目审计轨迹；条目不存在返回 None（已软删除的条目仍可查询）"""
        item = await self._stores.item_store.get_item(item_id)
        if item is None:
            return None
        return await self._stores.audit_store.list_for_item(item_id)

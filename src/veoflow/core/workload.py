"""WorkloadEvaluator -- 员工当前工作量（只读）

工作量 = 该员工名下未删除、且处于 IN_PROGRESS / IN_REVISION 或紧急的条目数，
每个条目只计一次。每次调用都读取当前持久化状态，不做缓存。
"""

from datetime import datetime

from .config import AssignmentConfig
from .limits import normalize_staff_id
from .models.enums import LifecycleState
from .models.workload import WorkloadSnapshot
from .store import StoreGroup


class WorkloadEvaluator:
    """员工工作量评估"""

    def __init__(self, store_group: StoreGroup, config: AssignmentConfig) -> None:
        self._stores = store_group
        self._config = config

    @property
    def max_concurrent(self) -> int:
        return self._config.max_concurrent_items

    async def active_count(self, staff_id: str, now: datetime) -> int:
        """员工当前有效工作量；未知员工返回 0

        Raises:
            ValueError: staff_id 为空
        """
        staff_id = normalize_staff_id(staff_id)
        return await self._stores.item_store.count_active_for_staff(
            staff_id, now, self._config.urgent_window
        )

    async def snapshot(self, staff_id: str, now: datetime) -> WorkloadSnapshot:
        """员工工作量明细

        Raises:
            ValueError: staff_id 为空
        """
        staff_id = normalize_staff_id(staff_id)
        window = self._config.urgent_window
        items = await self._stores.item_store.list_active_for_staff(staff_id, now, window)

        total = len(items)
        return WorkloadSnapshot(
            staff_id=staff_id,
            total_active=total,
            in_progress_count=sum(
                1 for i in items if i.lifecycle_state == LifecycleState.IN_PROGRESS
            ),
            in_revision_count=sum(
                1 for i in items if i.lifecycle_state == LifecycleState.IN_REVISION
            ),
            urgent_count=sum(1 for i in items if i.is_urgent(now, window)),
            active_item_ids=[i.item_id for i in items],
            max_concurrent=self.max_concurrent,
            can_accept_new_task=total < self.max_concurrent,
        )

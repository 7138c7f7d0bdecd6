"""StaffLimitRegistry -- 员工限制 / 每日配额

限制是管理员设置的、有时间边界的接单禁令，可选附带每日配额：
- max_per_day 为空：lock_until 之前完全禁止接单
- max_per_day 非空：lock_until 之前每天最多接 max_per_day 单

读操作总是按 now 判断 lock_until，已过期的限制无需写库即自动失效；
deactivate_expired 只是清理优化，由调度器在每次扫描后调用。
"""

from datetime import datetime

import structlog
from ulid import ULID

from .config import AssignmentConfig
from .models.enums import QuotaType
from .models.staff_limit import QuotaStatus, StaffLimit
from .store import StoreGroup, write_transaction
from .timeutil import day_bounds

log = structlog.get_logger()


def normalize_staff_id(staff_id: str) -> str:
    """去除首尾空白；空标识抛出 ValueError"""
    normalized = staff_id.strip() if staff_id else ""
    if not normalized:
        raise ValueError("staff_id must not be blank")
    return normalized


class StaffLimitRegistry:
    """员工限制注册表"""

    def __init__(self, store_group: StoreGroup, config: AssignmentConfig) -> None:
        self._stores = store_group
        self._config = config

    async def set_limit(
        self,
        staff_id: str,
        lock_until: datetime,
        max_per_day: int | None = None,
        *,
        created_by: str,
        now: datetime,
    ) -> StaffLimit:
        """为员工设置新的限制，同一事务内停用此前所有 active 限制

        Raises:
            ValueError: staff_id 为空、lock_until 不晚于 now、max_per_day 为负
        """
        staff_id = normalize_staff_id(staff_id)
        if lock_until <= now:
            raise ValueError("lock_until must be after now")
        if max_per_day is not None and max_per_day < 0:
            raise ValueError("max_per_day must be >= 0")

        limit = StaffLimit(
            limit_id=str(ULID()),
            staff_id=staff_id,
            lock_until=lock_until,
            max_per_day=max_per_day,
            active=True,
            created_at=now,
            created_by=created_by,
        )
        async with write_transaction(self._stores, "set_limit"):
            replaced = await self._stores.limit_store.deactivate_all(staff_id)
            await self._stores.limit_store.insert_limit(limit)

        log.info(
            "staff_limit_set",
            staff_id=staff_id,
            lock_until=lock_until.isoformat(),
            max_per_day=max_per_day,
            replaced=replaced,
            created_by=created_by,
        )
        return limit

    async def remove_limit(self, staff_id: str) -> int:
        """停用员工所有 active 限制，返回停用条数（0 也是正常结果）"""
        staff_id = normalize_staff_id(staff_id)
        async with write_transaction(self._stores, "remove_limit"):
            removed = await self._stores.limit_store.deactivate_all(staff_id)
        log.info("staff_limit_removed", staff_id=staff_id, removed=removed)
        return removed

    async def is_limited(self, staff_id: str, now: datetime) -> bool:
        return await self.get_active_limit(staff_id, now) is not None

    async def get_active_limit(self, staff_id: str, now: datetime) -> StaffLimit | None:
        staff_id = normalize_staff_id(staff_id)
        return await self._stores.limit_store.get_active_limit(staff_id, now)

    async def active_limits(self, now: datetime) -> list[StaffLimit]:
        """当前仍生效的全部限制"""
        return await self._stores.limit_store.list_active(now)

    async def history(self, staff_id: str) -> list[StaffLimit]:
        """员工限制历史，最新的在前"""
        staff_id = normalize_staff_id(staff_id)
        return await self._stores.limit_store.list_for_staff(staff_id)

    async def deactivate_expired(self, now: datetime) -> int:
        """停用已过期的 active 限制"""
        async with write_transaction(self._stores, "deactivate_expired_limits"):
            count = await self._stores.limit_store.deactivate_expired(now)
        if count:
            log.info("expired_limits_deactivated", count=count)
        return count

    async def assigned_today(self, staff_id: str, now: datetime) -> int:
        """员工当天（按配置时区的日历日）已接单数，不论条目当前状态"""
        staff_id = normalize_staff_id(staff_id)
        start, end = day_bounds(now, self._config.tzinfo)
        return await self._stores.item_store.count_assigned_between(staff_id, start, end)

    async def quota_status(self, staff_id: str, now: datetime) -> QuotaStatus:
        """员工当天的配额使用情况

        与 AssignmentGuard 的判定一致：封禁型限制不可接单；
        配额型限制下 assigned_today >= max_per_day 时不可接单。
        """
        staff_id = normalize_staff_id(staff_id)
        limit = await self._stores.limit_store.get_active_limit(staff_id, now)
        used = await self.assigned_today(staff_id, now)

        if limit is None:
            return QuotaStatus(
                staff_id=staff_id,
                quota_type=QuotaType.UNLIMITED,
                assigned_today=used,
                can_receive_new_items=True,
            )
        if not limit.is_quota:
            return QuotaStatus(
                staff_id=staff_id,
                quota_type=QuotaType.BLOCKED,
                limit=limit,
                assigned_today=used,
                can_receive_new_items=False,
            )
        return QuotaStatus(
            staff_id=staff_id,
            quota_type=QuotaType.DAILY_LIMITED,
            limit=limit,
            assigned_today=used,
            max_per_day=limit.max_per_day,
            remaining_today=max(0, limit.max_per_day - used),
            can_receive_new_items=used < limit.max_per_day,
        )

"""StaffLimit Domain Model

一位员工同一时刻至多一条 active 限制；新建限制会停用此前所有 active 限制。
lock_until 为窗口的开区间上界：lock_until <= now 时限制自动失效，无需写库。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import QuotaType


class StaffLimit(BaseModel):
    """员工限制

    max_per_day 为空时表示窗口内完全禁止接单；
    非空时表示窗口内每天最多接 max_per_day 单。
    """

    limit_id: str = Field(description="唯一标识，ULID 格式")
    staff_id: str = Field(description="员工标识")
    lock_until: datetime = Field(description="限制截止时间（不含）")
    max_per_day: int | None = Field(default=None, ge=0, description="每日配额")
    active: bool = Field(default=True, description="是否有效")
    created_at: datetime = Field(description="创建时间")
    created_by: str = Field(default="", description="创建者")

    @property
    def is_quota(self) -> bool:
        return self.max_per_day is not None

    def is_currently_active(self, now: datetime) -> bool:
        return self.active and self.lock_until > now

    def remaining_days(self, now: datetime) -> int:
        if not self.is_currently_active(now):
            return 0
        return (self.lock_until - now).days


class QuotaStatus(BaseModel):
    """员工当天的配额使用情况（按需计算，不落库）

    只反映限制与配额，不含并发上限；并发情况见 WorkloadSnapshot。
    """

    staff_id: str
    quota_type: QuotaType
    limit: StaffLimit | None = Field(default=None, description="当前生效的限制")
    assigned_today: int = Field(default=0, description="当天已接单数")
    max_per_day: int | None = Field(default=None)
    remaining_today: int | None = Field(default=None, description="当天剩余配额，无配额时为空")
    can_receive_new_items: bool

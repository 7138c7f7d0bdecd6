"""WorkItem Domain Model

只包含分配/回收逻辑关心的字段；客户、素材链接、价格等目录信息不在此处。
assigned_staff 与 assigned_at 同时为空或同时非空。
"""

from datetime import datetime, timedelta

from pydantic import BaseModel, Field, model_validator

from .enums import ACTIVE_STATES, TERMINAL_STATES, LifecycleState


class WorkItem(BaseModel):
    """WorkItem 数据模型

    分配相关字段（assigned_staff / assigned_at / lifecycle_state）
    只能由 AssignmentGuard 和 ReclaimService 修改。
    """

    item_id: str = Field(description="唯一标识，ULID 格式")
    title: str = Field(default="", description="标题")
    owner: str | None = Field(default=None, description="创建者 / 负责人，回收时接收通知")
    assigned_staff: str | None = Field(default=None, description="当前负责员工，None 表示未分配")
    assigned_at: datetime | None = Field(default=None, description="分配时间")
    lifecycle_state: LifecycleState = Field(
        default=LifecycleState.UNASSIGNED,
        description="生命周期状态",
    )
    urgent: bool = Field(default=False, description="紧急标记（返工时置位）")
    due_at: datetime | None = Field(default=None, description="交付截止时间")
    deleted: bool = Field(default=False, description="软删除标记")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")

    @model_validator(mode="after")
    def _check_assignment_pair(self) -> "WorkItem":
        if (self.assigned_staff is None) != (self.assigned_at is None):
            raise ValueError("assigned_staff and assigned_at must be set together")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.lifecycle_state in TERMINAL_STATES

    def is_urgent(self, now: datetime, window: timedelta | None = None) -> bool:
        """紧急判定：显式标记，或未完成且截止时间落在窗口内"""
        if self.urgent:
            return True
        if window is None or self.due_at is None or self.is_terminal:
            return False
        return self.due_at < now + window

    def counts_as_workload(self, now: datetime, window: timedelta | None = None) -> bool:
        """是否计入 assigned_staff 的当前工作量"""
        if self.deleted or self.assigned_staff is None:
            return False
        return self.lifecycle_state in ACTIVE_STATES or self.is_urgent(now, window)

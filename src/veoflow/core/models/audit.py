"""AuditEntry Domain Model

审计表 append-only，与被记录的状态变更在同一 SQLite 事务内写入。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import AuditAction, LifecycleState


class AuditEntry(BaseModel):
    """审计记录"""

    entry_id: str = Field(description="唯一标识，ULID 格式，时间有序")
    item_id: str = Field(description="关联的 WorkItem ID")
    ts: datetime = Field(description="发生时间")
    action: AuditAction = Field(description="动作")
    actor: str = Field(description="操作者")
    old_staff: str | None = Field(default=None)
    new_staff: str | None = Field(default=None)
    old_state: LifecycleState | None = Field(default=None)
    new_state: LifecycleState | None = Field(default=None)
    detail: str = Field(default="")

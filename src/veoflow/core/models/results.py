"""操作结果类型

守卫操作返回 Accepted | Rejected，而不是用异常表达预期的业务拒绝。
SweepReport 汇总一次回收扫描。
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, computed_field

from .enums import RejectionReason
from .item import WorkItem


class Accepted(BaseModel):
    """操作成功，携带写入后的 WorkItem"""

    ok: Literal[True] = True
    item: WorkItem


class Rejected(BaseModel):
    """操作被拒绝

    details 携带调用方渲染提示所需的数据，
    例如 {"current": 3, "max": 3} 或 {"lock_until": "..."}。
    """

    ok: Literal[False] = False
    reason: RejectionReason
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


GuardResult = Accepted | Rejected


class SweepFailure(BaseModel):
    """单条回收失败记录"""

    item_id: str
    error_type: str
    message: str


class SweepReport(BaseModel):
    """一次回收扫描的结果"""

    started_at: datetime
    finished_at: datetime | None = None
    reclaimed_item_ids: list[str] = Field(default_factory=list)
    skipped_item_ids: list[str] = Field(
        default_factory=list,
        description="写入时谓词已不成立（已完成或已被取消分配）",
    )
    failures: list[SweepFailure] = Field(default_factory=list)
    truncated: bool = Field(default=False, description="因时长或条数上限提前结束")

    @computed_field
    @property
    def reclaimed_count(self) -> int:
        return len(self.reclaimed_item_ids)

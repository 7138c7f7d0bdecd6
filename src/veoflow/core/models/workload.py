"""WorkloadSnapshot -- 按需计算的员工工作量快照（不落库、不缓存）"""

from pydantic import BaseModel, Field


class WorkloadSnapshot(BaseModel):
    """员工工作量快照

    total_active 按条目去重：既在 IN_REVISION 又紧急的条目只计一次，
    因此各分项之和可能大于 total_active。
    """

    staff_id: str
    total_active: int = Field(default=0, description="当前有效工作量")
    in_progress_count: int = Field(default=0)
    in_revision_count: int = Field(default=0)
    urgent_count: int = Field(default=0)
    active_item_ids: list[str] = Field(default_factory=list)
    max_concurrent: int = Field(description="并发上限")
    can_accept_new_task: bool = Field(description="total_active < max_concurrent")

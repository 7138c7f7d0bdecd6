"""veoflow Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .audit import AuditEntry
from .enums import (
    ACTIVE_STATES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    AuditAction,
    LifecycleState,
    NotificationKind,
    QuotaType,
    RejectionReason,
    validate_transition,
)
from .item import WorkItem
from .results import Accepted, GuardResult, Rejected, SweepFailure, SweepReport
from .staff_limit import QuotaStatus, StaffLimit
from .workload import WorkloadSnapshot

__all__ = [
    # 枚举
    "LifecycleState",
    "RejectionReason",
    "AuditAction",
    "NotificationKind",
    "QuotaType",
    # 状态机
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "ACTIVE_STATES",
    "validate_transition",
    # 实体
    "WorkItem",
    "StaffLimit",
    "AuditEntry",
    "WorkloadSnapshot",
    "QuotaStatus",
    # 结果
    "Accepted",
    "Rejected",
    "GuardResult",
    "SweepFailure",
    "SweepReport",
]

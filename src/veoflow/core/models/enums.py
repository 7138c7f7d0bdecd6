"""枚举定义

包含 LifecycleState 状态机、RejectionReason、AuditAction、NotificationKind，
以及 VALID_TRANSITIONS 合法流转映射和 TERMINAL_STATES 终态集合。
"""

from enum import StrEnum
from types import MappingProxyType


class LifecycleState(StrEnum):
    """WorkItem 生命周期状态"""

    UNASSIGNED = "UNASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVISION = "IN_REVISION"

    # 对分配逻辑而言的终态
    DONE = "DONE"
    DONE_REVISED = "DONE_REVISED"
    CANCELLED = "CANCELLED"


# 合法状态流转
VALID_TRANSITIONS: MappingProxyType[LifecycleState, frozenset[LifecycleState]] = MappingProxyType(
    {
        LifecycleState.UNASSIGNED: frozenset(
            {LifecycleState.IN_PROGRESS, LifecycleState.CANCELLED}
        ),
        LifecycleState.IN_PROGRESS: frozenset(
            {
                LifecycleState.DONE,
                LifecycleState.UNASSIGNED,
                LifecycleState.CANCELLED,
            }
        ),
        LifecycleState.IN_REVISION: frozenset(
            {
                LifecycleState.DONE_REVISED,
                LifecycleState.UNASSIGNED,
                LifecycleState.CANCELLED,
            }
        ),
        # 客户要求返工：DONE -> IN_REVISION
        LifecycleState.DONE: frozenset({LifecycleState.IN_REVISION}),
        LifecycleState.DONE_REVISED: frozenset(),
        LifecycleState.CANCELLED: frozenset(),
    }
)

# 终态：不再接受分配、取消分配、回收
TERMINAL_STATES: frozenset[LifecycleState] = frozenset(
    {
        LifecycleState.DONE,
        LifecycleState.DONE_REVISED,
        LifecycleState.CANCELLED,
    }
)

# 计入员工工作量的状态（紧急项另算）
ACTIVE_STATES: frozenset[LifecycleState] = frozenset(
    {LifecycleState.IN_PROGRESS, LifecycleState.IN_REVISION}
)


class RejectionReason(StrEnum):
    """操作被拒绝的原因 -- 机器可读，调用方据此渲染提示"""

    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    STAFF_LIMITED = "STAFF_LIMITED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"


class AuditAction(StrEnum):
    """审计动作"""

    ASSIGN_STAFF = "ASSIGN_STAFF"
    UNASSIGN_STAFF = "UNASSIGN_STAFF"
    UPDATE_STATUS = "UPDATE_STATUS"
    AUTO_RESET = "AUTO_RESET"
    CANCEL = "CANCEL"


class NotificationKind(StrEnum):
    """通知类型"""

    ITEM_ASSIGNED = "ITEM_ASSIGNED"
    ITEM_RECLAIMED = "ITEM_RECLAIMED"
    REVISION_REQUESTED = "REVISION_REQUESTED"
    REVISION_COMPLETED = "REVISION_COMPLETED"


class QuotaType(StrEnum):
    """员工当前的接单限制类型"""

    UNLIMITED = "UNLIMITED"
    BLOCKED = "BLOCKED"
    DAILY_LIMITED = "DAILY_LIMITED"


def validate_transition(from_state: LifecycleState, to_state: LifecycleState) -> bool:
    """验证状态流转是否合法

    Args:
        from_state: 当前状态
        to_state: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_state, frozenset())
    return to_state in allowed

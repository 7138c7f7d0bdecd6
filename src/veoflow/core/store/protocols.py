"""协作方 Protocol 接口定义

AuditRecorder 与 Notifier 是分配子系统的外部协作方，
使用 Python Protocol 实现结构化子类型（duck typing），便于测试替换。
"""

from datetime import datetime
from typing import Any, Protocol

from ..models.audit import AuditEntry
from ..models.enums import LifecycleState, NotificationKind


class AuditRecorder(Protocol):
    """审计记录接口

    写方法在调用方的事务内执行，与被审计的状态变更一起提交或回滚。
    """

    async def record_assignment_change(
        self,
        item_id: str,
        old_staff: str | None,
        new_staff: str | None,
        actor: str,
        ts: datetime,
        old_state: LifecycleState | None = None,
        new_state: LifecycleState | None = None,
    ) -> AuditEntry:
        """记录分配变更"""
        ...

    async def record_reclaim(
        self,
        item_id: str,
        previous_staff: str | None,
        ts: datetime,
        old_state: LifecycleState | None = None,
        actor: str = "system",
        detail: str = "",
    ) -> AuditEntry:
        """记录超时回收"""
        ...

    async def record_state_change(
        self,
        item_id: str,
        old_state: LifecycleState,
        new_state: LifecycleState,
        actor: str,
        ts: datetime,
        staff: str | None = None,
        detail: str = "",
    ) -> AuditEntry:
        """记录生命周期流转"""
        ...

    async def list_for_item(self, item_id: str) -> list[AuditEntry]:
        """查询条目审计轨迹"""
        ...


class Notifier(Protocol):
    """通知接口 -- fire and forget

    调用发生在事务提交之后；实现抛出的异常由调用方记录并吞掉，
    不影响已提交的状态。
    """

    async def notify(
        self,
        recipient: str,
        kind: NotificationKind,
        payload: dict[str, Any],
    ) -> None:
        """向 recipient 投递一条通知"""
        ...

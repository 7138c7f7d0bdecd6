"""AssignmentGuard -- 分配守卫与生命周期流转

try_assign 的检查顺序（命中即返回）：
1. 条目存在且未删除                -> NOT_FOUND
2. 条目处于 UNASSIGNED            -> INVALID_STATE
3. 员工无封禁型限制                -> STAFF_LIMITED
4. 配额型限制下当天接单数未超额     -> QUOTA_EXCEEDED
5. 员工工作量低于并发上限           -> CAPACITY_EXCEEDED

检查先在事务外快速执行一次，再在 BEGIN IMMEDIATE 写事务内重新执行，
写入本身是 compare-and-write。写入 0 行或拿不到写锁视为并发冲突：
整次尝试（含全部检查）重试一次，仍冲突则返回 CONCURRENCY_CONFLICT。

状态前置条件统一由 VALID_TRANSITIONS（validate_transition）判定。

业务拒绝以 Rejected 返回并记 info 日志；异常只用于基础设施故障。
"""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

import structlog

from .config import AssignmentConfig
from .exceptions import ConcurrencyConflictError
from .limits import StaffLimitRegistry, normalize_staff_id
from .models.enums import (
    LifecycleState,
    NotificationKind,
    RejectionReason,
    validate_transition,
)
from .models.item import WorkItem
from .models.results import Accepted, GuardResult, Rejected
from .notify import notify_safely
from .store import StoreGroup, write_transaction
from .store.protocols import Notifier
from .workload import WorkloadEvaluator

log = structlog.get_logger()

# 冲突后最多重试次数（不含首次）
_MAX_CONFLICT_RETRIES = 1

def _rejected(
    reason: RejectionReason,
    message: str,
    **details: Any,
) -> Rejected:
    return Rejected(reason=reason, message=message, details=details)


def _not_found(item_id: str) -> Rejected:
    return _rejected(RejectionReason.NOT_FOUND, f"item {item_id} not found", item_id=item_id)


def _invalid_state(item: WorkItem, operation: str) -> Rejected:
    return _rejected(
        RejectionReason.INVALID_STATE,
        f"cannot {operation} item in state {item.lifecycle_state.value}",
        item_id=item.item_id,
        state=item.lifecycle_state.value,
    )


def _payload(item: WorkItem, actor: str, now: datetime, **extra: Any) -> dict[str, Any]:
    return {
        "item_id": item.item_id,
        "title": item.title,
        "actor": actor,
        "ts": now.isoformat(),
        **extra,
    }


class AssignmentGuard:
    """分配守卫"""

    def __init__(
        self,
        store_group: StoreGroup,
        registry: StaffLimitRegistry,
        evaluator: WorkloadEvaluator,
        config: AssignmentConfig,
        notifier: Notifier | None = None,
    ) -> None:
        self._stores = store_group
        self._registry = registry
        self._evaluator = evaluator
        self._config = config
        self._notifier = notifier

    # ---- 分配 ----

    async def try_assign(
        self,
        item_id: str,
        staff_id: str,
        actor: str,
        now: datetime | None = None,
    ) -> GuardResult:
        """尝试将条目分配给员工

        Raises:
            ValueError: staff_id 为空
            StoreUnavailableError: 存储故障
        """
        staff_id = normalize_staff_id(staff_id)
        now = now or datetime.now(UTC)

        async def attempt() -> GuardResult:
            checked = await self._check_assign(item_id, staff_id, now)
            if isinstance(checked, Rejected):
                return checked

            async with write_transaction(self._stores, "try_assign"):
                checked = await self._check_assign(item_id, staff_id, now)
                if isinstance(checked, Rejected):
                    return checked
                written = await self._stores.item_store.assign_if_unassigned(
                    item_id, staff_id, now
                )
                if not written:
                    raise ConcurrencyConflictError(item_id)
                await self._stores.audit_store.record_assignment_change(
                    item_id,
                    checked.assigned_staff,
                    staff_id,
                    actor,
                    now,
                    old_state=checked.lifecycle_state,
                    new_state=LifecycleState.IN_PROGRESS,
                )
                item = await self._stores.item_store.get_item(item_id)
            return Accepted(item=item)

        result = await self._with_retry("try_assign", item_id, attempt, staff_id=staff_id)
        if isinstance(result, Accepted):
            await notify_safely(
                self._notifier,
                staff_id,
                NotificationKind.ITEM_ASSIGNED,
                _payload(result.item, actor, now, staff_id=staff_id),
            )
        return result

    async def _check_assign(
        self,
        item_id: str,
        staff_id: str,
        now: datetime,
    ) -> WorkItem | Rejected:
        item = await self._stores.item_store.get_item(item_id)
        if item is None or item.deleted:
            return _not_found(item_id)
        if not validate_transition(item.lifecycle_state, LifecycleState.IN_PROGRESS):
            return _invalid_state(item, "assign")

        limit = await self._registry.get_active_limit(staff_id, now)
        if limit is not None:
            if not limit.is_quota:
                return _rejected(
                    RejectionReason.STAFF_LIMITED,
                    f"staff {staff_id} is limited until {limit.lock_until.isoformat()}",
                    staff_id=staff_id,
                    lock_until=limit.lock_until.isoformat(),
                    remaining_days=limit.remaining_days(now),
                )
            used = await self._registry.assigned_today(staff_id, now)
            if used >= limit.max_per_day:
                return _rejected(
                    RejectionReason.QUOTA_EXCEEDED,
                    f"staff {staff_id} reached daily quota ({used}/{limit.max_per_day})",
                    staff_id=staff_id,
                    used=used,
                    max=limit.max_per_day,
                    lock_until=limit.lock_until.isoformat(),
                )

        capacity = await self._check_capacity(staff_id, now)
        if capacity is not None:
            return capacity
        return item

    async def _check_capacity(self, staff_id: str, now: datetime) -> Rejected | None:
        snapshot = await self._evaluator.snapshot(staff_id, now)
        if snapshot.can_accept_new_task:
            return None
        return _rejected(
            RejectionReason.CAPACITY_EXCEEDED,
            f"staff {staff_id} is at capacity "
            f"({snapshot.total_active}/{snapshot.max_concurrent})",
            staff_id=staff_id,
            current=snapshot.total_active,
            max=snapshot.max_concurrent,
            active_item_ids=snapshot.active_item_ids,
        )

    # ---- 取消分配 ----

    async def force_unassign(
        self,
        item_id: str,
        actor: str,
        now: datetime | None = None,
    ) -> GuardResult:
        """管理员取消分配：清空分配字段，回到 UNASSIGNED

        已是 UNASSIGNED 的条目视为成功（无操作）。
        """
        now = now or datetime.now(UTC)

        async def attempt() -> GuardResult:
            async with write_transaction(self._stores, "force_unassign"):
                item = await self._stores.item_store.get_item(item_id)
                if item is None or item.deleted:
                    return _not_found(item_id)
                if item.lifecycle_state == LifecycleState.UNASSIGNED:
                    return Accepted(item=item)
                if not validate_transition(item.lifecycle_state, LifecycleState.UNASSIGNED):
                    return _invalid_state(item, "unassign")

                written = await self._stores.item_store.update_state(
                    item_id,
                    item.lifecycle_state,
                    LifecycleState.UNASSIGNED,
                    now,
                    clear_assignment=True,
                    urgent=False,
                )
                if not written:
                    raise ConcurrencyConflictError(item_id)
                await self._stores.audit_store.record_assignment_change(
                    item_id,
                    item.assigned_staff,
                    None,
                    actor,
                    now,
                    old_state=item.lifecycle_state,
                    new_state=LifecycleState.UNASSIGNED,
                )
                updated = await self._stores.item_store.get_item(item_id)
            return Accepted(item=updated)

        return await self._with_retry("force_unassign", item_id, attempt)

    # ---- 生命周期流转 ----

    async def complete(
        self,
        item_id: str,
        actor: str,
        now: datetime | None = None,
    ) -> GuardResult:
        """IN_PROGRESS -> DONE，保留分配信息"""
        return await self._transition(
            "complete",
            item_id,
            actor,
            now or datetime.now(UTC),
            to_state=LifecycleState.DONE,
            urgent=False,
        )

    async def flag_revision(
        self,
        item_id: str,
        actor: str,
        now: datetime | None = None,
    ) -> GuardResult:
        """DONE -> IN_REVISION：置紧急标记、重置 assigned_at，通知负责员工

        返工会重新占用负责员工的并发额度，因此事务内重新校验容量。
        """
        now = now or datetime.now(UTC)
        result = await self._transition(
            "flag_revision",
            item_id,
            actor,
            now,
            to_state=LifecycleState.IN_REVISION,
            urgent=True,
            restamp_assigned_at=True,
            require_assignee=True,
            check_capacity=True,
        )
        if isinstance(result, Accepted):
            await notify_safely(
                self._notifier,
                result.item.assigned_staff,
                NotificationKind.REVISION_REQUESTED,
                _payload(result.item, actor, now, staff_id=result.item.assigned_staff),
            )
        return result

    async def complete_revision(
        self,
        item_id: str,
        actor: str,
        now: datetime | None = None,
    ) -> GuardResult:
        """IN_REVISION -> DONE_REVISED：清除紧急标记，通知负责人"""
        now = now or datetime.now(UTC)
        result = await self._transition(
            "complete_revision",
            item_id,
            actor,
            now,
            to_state=LifecycleState.DONE_REVISED,
            urgent=False,
        )
        if isinstance(result, Accepted):
            await notify_safely(
                self._notifier,
                result.item.owner,
                NotificationKind.REVISION_COMPLETED,
                _payload(result.item, actor, now, staff_id=result.item.assigned_staff),
            )
        return result

    async def cancel(
        self,
        item_id: str,
        actor: str,
        now: datetime | None = None,
    ) -> GuardResult:
        """UNASSIGNED / IN_PROGRESS / IN_REVISION -> CANCELLED，清空分配和紧急标记"""
        return await self._transition(
            "cancel",
            item_id,
            actor,
            now or datetime.now(UTC),
            to_state=LifecycleState.CANCELLED,
            urgent=False,
            clear_assignment=True,
        )

    async def _transition(
        self,
        operation: str,
        item_id: str,
        actor: str,
        now: datetime,
        *,
        to_state: LifecycleState,
        urgent: bool | None = None,
        clear_assignment: bool = False,
        restamp_assigned_at: bool = False,
        require_assignee: bool = False,
        check_capacity: bool = False,
    ) -> GuardResult:
        async def attempt() -> GuardResult:
            async with write_transaction(self._stores, operation):
                item = await self._stores.item_store.get_item(item_id)
                if item is None or item.deleted:
                    return _not_found(item_id)
                if not validate_transition(item.lifecycle_state, to_state):
                    return _invalid_state(item, operation)
                if require_assignee and item.assigned_staff is None:
                    return _rejected(
                        RejectionReason.INVALID_STATE,
                        f"cannot {operation} item without assignee",
                        item_id=item_id,
                        state=item.lifecycle_state.value,
                    )
                if check_capacity and item.assigned_staff is not None:
                    capacity = await self._check_capacity(item.assigned_staff, now)
                    if capacity is not None:
                        return capacity

                written = await self._stores.item_store.update_state(
                    item_id,
                    item.lifecycle_state,
                    to_state,
                    now,
                    clear_assignment=clear_assignment,
                    urgent=urgent,
                    restamp_assigned_at=restamp_assigned_at,
                )
                if not written:
                    raise ConcurrencyConflictError(item_id)
                await self._stores.audit_store.record_state_change(
                    item_id,
                    item.lifecycle_state,
                    to_state,
                    actor,
                    now,
                    staff=item.assigned_staff,
                )
                updated = await self._stores.item_store.get_item(item_id)
            return Accepted(item=updated)

        return await self._with_retry(operation, item_id, attempt)

    # ---- 重试 ----

    async def _with_retry(
        self,
        operation: str,
        item_id: str,
        attempt: Callable[[], Awaitable[GuardResult]],
        **log_context: Any,
    ) -> GuardResult:
        for attempt_no in range(_MAX_CONFLICT_RETRIES + 1):
            try:
                result = await attempt()
            except ConcurrencyConflictError:
                log.info(
                    "guard_concurrency_conflict",
                    operation=operation,
                    item_id=item_id,
                    attempt=attempt_no + 1,
                    **log_context,
                )
                continue

            if isinstance(result, Rejected):
                log.info(
                    "guard_rejected",
                    operation=operation,
                    item_id=item_id,
                    reason=result.reason.value,
                    **log_context,
                )
            else:
                log.info(
                    "guard_accepted",
                    operation=operation,
                    item_id=item_id,
                    state=result.item.lifecycle_state.value,
                    **log_context,
                )
            return result

        return _rejected(
            RejectionReason.CONCURRENCY_CONFLICT,
            f"concurrent modification of item {item_id}, retry later",
            item_id=item_id,
        )

"""ReclaimService -- 超时分配自动回收

回收谓词（SQL 片段由 item_store.expired_clause 统一生成）：
未删除、已分配、处于 IN_PROGRESS / IN_REVISION、assigned_at < now - timeout。

sweep 先选出候选，再对每个条目单独开写事务：UPDATE 的 WHERE 子句
重新校验谓词，0 行表示条目已被完成或取消分配（记为 skipped，不是错误）。
单条失败记录到 failures 后继续处理下一条。
"""

import asyncio
from datetime import UTC, datetime, timedelta

import structlog

from .config import AssignmentConfig
from .exceptions import ConcurrencyConflictError, StoreUnavailableError
from .models.enums import NotificationKind, RejectionReason
from .models.item import WorkItem
from .models.results import Accepted, GuardResult, Rejected, SweepFailure, SweepReport
from .notify import notify_safely
from .store import StoreGroup, write_transaction
from .store.protocols import Notifier

log = structlog.get_logger()

SYSTEM_ACTOR = "system"


class ReclaimService:
    """超时回收服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        config: AssignmentConfig,
        notifier: Notifier | None = None,
    ) -> None:
        self._stores = store_group
        self._config = config
        self._notifier = notifier

    def _cutoff(self, timeout: timedelta | None, now: datetime) -> datetime:
        return now - (timeout if timeout is not None else self._config.assignment_timeout)

    async def sweep(
        self,
        timeout: timedelta | None = None,
        now: datetime | None = None,
        *,
        max_items: int | None = None,
        max_duration: float | None = None,
    ) -> SweepReport:
        """执行一次回收扫描

        Args:
            timeout: 分配超时，默认取配置
            now: 当前时间
            max_items: 本次最多处理条数，超出部分留给下一次扫描
            max_duration: 本次时长上限（秒），在条目之间检查

        Returns:
            SweepReport
        """
        now = now or datetime.now(UTC)
        cutoff = self._cutoff(timeout, now)
        report = SweepReport(started_at=now)
        loop = asyncio.get_running_loop()
        started = loop.time()

        fetch_limit = max_items + 1 if max_items is not None else None
        candidates = await self._stores.item_store.list_expired(cutoff, fetch_limit)
        if max_items is not None and len(candidates) > max_items:
            candidates = candidates[:max_items]
            report.truncated = True

        for index, item in enumerate(candidates):
            if max_duration is not None and loop.time() - started >= max_duration:
                report.truncated = True
                log.warning(
                    "sweep_duration_exceeded",
                    max_duration=max_duration,
                    processed=index,
                    remaining=len(candidates) - index,
                )
                break

            try:
                released = await self._release(item.item_id, cutoff, now, SYSTEM_ACTOR)
            except (StoreUnavailableError, ConcurrencyConflictError) as e:
                log.warning(
                    "reclaim_item_failed",
                    item_id=item.item_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                report.failures.append(
                    SweepFailure(
                        item_id=item.item_id,
                        error_type=type(e).__name__,
                        message=str(e),
                    )
                )
                continue

            if released is not None:
                report.reclaimed_item_ids.append(item.item_id)
                await self._notify_reclaimed(released, SYSTEM_ACTOR, now)
            else:
                report.skipped_item_ids.append(item.item_id)

        report.finished_at = datetime.now(UTC)
        log.info(
            "sweep_completed",
            cutoff=cutoff.isoformat(),
            candidates=len(candidates),
            reclaimed=report.reclaimed_count,
            skipped=len(report.skipped_item_ids),
            failures=len(report.failures),
            truncated=report.truncated,
        )
        return report

    async def count_expired(
        self,
        timeout: timedelta | None = None,
        now: datetime | None = None,
    ) -> int:
        now = now or datetime.now(UTC)
        return await self._stores.item_store.count_expired(self._cutoff(timeout, now))

    async def list_expired(
        self,
        timeout: timedelta | None = None,
        now: datetime | None = None,
        limit: int | None = None,
    ) -> list[WorkItem]:
        """已超时的分配，最久的在前"""
        now = now or datetime.now(UTC)
        return await self._stores.item_store.list_expired(self._cutoff(timeout, now), limit)

    async def is_expired(
        self,
        item_id: str,
        timeout: timedelta | None = None,
        now: datetime | None = None,
    ) -> bool:
        now = now or datetime.now(UTC)
        return await self._stores.item_store.is_expired(item_id, self._cutoff(timeout, now))

    async def reclaim_item(
        self,
        item_id: str,
        actor: str,
        now: datetime | None = None,
        timeout: timedelta | None = None,
        force: bool = False,
    ) -> GuardResult:
        """手动回收单个条目

        force=True 时不检查超时，任何进行中的分配都会被回收（管理员重置）。
        """
        now = now or datetime.now(UTC)
        item = await self._stores.item_store.get_item(item_id)
        if item is None or item.deleted:
            return Rejected(
                reason=RejectionReason.NOT_FOUND,
                message=f"item {item_id} not found",
                details={"item_id": item_id},
            )

        cutoff = None if force else self._cutoff(timeout, now)
        try:
            released = await self._release(item_id, cutoff, now, actor)
        except ConcurrencyConflictError:
            log.info("reclaim_concurrency_conflict", item_id=item_id, actor=actor)
            return Rejected(
                reason=RejectionReason.CONCURRENCY_CONFLICT,
                message=f"concurrent modification of item {item_id}, retry later",
                details={"item_id": item_id},
            )

        current = await self._stores.item_store.get_item(item_id)
        if released is None:
            log.info(
                "reclaim_rejected",
                item_id=item_id,
                state=current.lifecycle_state.value,
                force=force,
            )
            return Rejected(
                reason=RejectionReason.INVALID_STATE,
                message=(
                    f"item {item_id} is not reclaimable "
                    f"(state {current.lifecycle_state.value})"
                ),
                details={
                    "item_id": item_id,
                    "state": current.lifecycle_state.value,
                    "assigned_at": (
                        current.assigned_at.isoformat() if current.assigned_at else None
                    ),
                },
            )

        log.info(
            "item_reclaimed_manually",
            item_id=item_id,
            previous_staff=released.assigned_staff,
            actor=actor,
            force=force,
        )
        await self._notify_reclaimed(released, actor, now)
        return Accepted(item=current)

    async def _release(
        self,
        item_id: str,
        cutoff: datetime | None,
        now: datetime,
        actor: str,
    ) -> WorkItem | None:
        """单条回收事务

        Returns:
            回收前的条目快照；None 表示谓词在写入时已不成立
        """
        async with write_transaction(self._stores, "reclaim"):
            before = await self._stores.item_store.get_item(item_id)
            if before is None:
                return None
            written = await self._stores.item_store.release_if_expired(item_id, cutoff, now)
            if not written:
                return None
            await self._stores.audit_store.record_reclaim(
                item_id,
                before.assigned_staff,
                now,
                old_state=before.lifecycle_state,
                actor=actor,
                detail=(
                    f"assigned_at={before.assigned_at.isoformat()}"
                    if before.assigned_at
                    else ""
                ),
            )
        return before

    async def _notify_reclaimed(self, item: WorkItem, actor: str, now: datetime) -> None:
        payload = {
            "item_id": item.item_id,
            "title": item.title,
            "previous_staff": item.assigned_staff,
            "assigned_at": item.assigned_at.isoformat() if item.assigned_at else None,
            "actor": actor,
            "ts": now.isoformat(),
        }
        recipients = [item.assigned_staff]
        if item.owner and item.owner != item.assigned_staff:
            recipients.append(item.owner)
        for recipient in recipients:
            await notify_safely(
                self._notifier, recipient, NotificationKind.ITEM_RECLAIMED, payload
            )

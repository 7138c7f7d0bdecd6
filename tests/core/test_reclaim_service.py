"""ReclaimService 单元测试

测试内容：
1. 超时判定：20 分钟前分配的条目被回收，10 分钟前的不动
2. 幂等：连续两次扫描，第二次回收数为 0
3. 单条失败隔离、写入时谓词失效记为 skipped
4. 条数 / 时长上限截断
5. 回收通知（原负责员工 + 负责人）与审计
6. 手动回收 reclaim_item（含 force）
7. 连接已关闭时查询与回收报告 StoreUnavailableError
"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from veoflow.core.exceptions import ConcurrencyConflictError, StoreUnavailableError
from veoflow.core.models import (
    Accepted,
    AuditAction,
    LifecycleState,
    NotificationKind,
    RejectionReason,
)
from veoflow.core.reclaim import SYSTEM_ACTOR, ReclaimService

TIMEOUT = timedelta(minutes=15)


def _assigned(*, now, staff="alice", minutes_ago=20, state=LifecycleState.IN_PROGRESS):
    return {
        "assigned_staff": staff,
        "assigned_at": now - timedelta(minutes=minutes_ago),
        "lifecycle_state": state,
    }


class TestSweep:
    async def test_expired_item_is_reclaimed(self, reclaim, store_group, make_item, now):
        item = await make_item(**_assigned(now=now, minutes_ago=20))

        report = await reclaim.sweep(TIMEOUT, now)

        assert report.reclaimed_item_ids == [item.item_id]
        assert report.reclaimed_count == 1
        assert report.failures == []
        assert report.truncated is False
        assert report.finished_at is not None

        stored = await store_group.item_store.get_item(item.item_id)
        assert stored.assigned_staff is None
        assert stored.assigned_at is None
        assert stored.lifecycle_state == LifecycleState.UNASSIGNED

    async def test_fresh_item_untouched(self, reclaim, store_group, make_item, now):
        item = await make_item(**_assigned(now=now, minutes_ago=10))

        report = await reclaim.sweep(TIMEOUT, now)

        assert report.reclaimed_count == 0
        stored = await store_group.item_store.get_item(item.item_id)
        assert stored.model_dump() == item.model_dump()

    async def test_exact_timeout_is_not_expired(self, reclaim, make_item, now):
        await make_item(**_assigned(now=now, minutes_ago=15))
        report = await reclaim.sweep(TIMEOUT, now)
        assert report.reclaimed_count == 0

    async def test_default_timeout_from_config(self, reclaim, make_item, now):
        await make_item(**_assigned(now=now, minutes_ago=16))
        report = await reclaim.sweep(now=now)
        assert report.reclaimed_count == 1

    async def test_revision_item_is_reclaimed(self, reclaim, store_group, make_item, now):
        item = await make_item(
            urgent=True,
            **_assigned(now=now, minutes_ago=30, state=LifecycleState.IN_REVISION),
        )
        await reclaim.sweep(TIMEOUT, now)

        stored = await store_group.item_store.get_item(item.item_id)
        assert stored.lifecycle_state == LifecycleState.UNASSIGNED
        assert stored.urgent is False

    async def test_terminal_and_deleted_are_ignored(self, reclaim, make_item, now):
        await make_item(**_assigned(now=now, minutes_ago=60, state=LifecycleState.DONE))
        await make_item(deleted=True, **_assigned(now=now, minutes_ago=60))

        report = await reclaim.sweep(TIMEOUT, now)
        assert report.reclaimed_count == 0
        assert report.skipped_item_ids == []

    async def test_idempotent(self, reclaim, make_item, now):
        await make_item(**_assigned(now=now, minutes_ago=20))
        await make_item(**_assigned(staff="bob", now=now, minutes_ago=40))

        first = await reclaim.sweep(TIMEOUT, now)
        second = await reclaim.sweep(TIMEOUT, now)

        assert first.reclaimed_count == 2
        assert second.reclaimed_count == 0

    async def test_oldest_first(self, reclaim, make_item, now):
        newer = await make_item(**_assigned(now=now, minutes_ago=20))
        older = await make_item(**_assigned(now=now, minutes_ago=90))

        report = await reclaim.sweep(TIMEOUT, now)
        assert report.reclaimed_item_ids == [older.item_id, newer.item_id]

    async def test_reclaim_frees_capacity(self, reclaim, guard, make_item, now):
        for minutes in (20, 5, 5):
            await make_item(**_assigned(now=now, minutes_ago=minutes))
        extra = await make_item()
        assert (await guard.try_assign(extra.item_id, "alice", "alice", now)).ok is False

        await reclaim.sweep(TIMEOUT, now)
        assert (await guard.try_assign(extra.item_id, "alice", "alice", now)).ok is True


class TestSweepResilience:
    async def test_store_failure_isolated_per_item(self, reclaim, store_group, make_item, now):
        bad = await make_item(**_assigned(now=now, minutes_ago=60))
        good = await make_item(**_assigned(now=now, minutes_ago=30))
        real = store_group.audit_store.record_reclaim

        async def flaky(item_id, *args, **kwargs):
            if item_id == bad.item_id:
                raise StoreUnavailableError("reclaim", RuntimeError("disk I/O error"))
            return await real(item_id, *args, **kwargs)

        with patch.object(store_group.audit_store, "record_reclaim", side_effect=flaky):
            report = await reclaim.sweep(TIMEOUT, now)

        assert report.reclaimed_item_ids == [good.item_id]
        assert len(report.failures) == 1
        assert report.failures[0].item_id == bad.item_id
        assert report.failures[0].error_type == "StoreUnavailableError"

        # 失败条目的事务已回滚，下一次扫描重新处理
        stored = await store_group.item_store.get_item(bad.item_id)
        assert stored.assigned_staff == "alice"
        retry = await reclaim.sweep(TIMEOUT, now)
        assert retry.reclaimed_item_ids == [bad.item_id]

    async def test_conflict_recorded_as_failure(self, reclaim, store_group, make_item, now):
        await make_item(**_assigned(now=now, minutes_ago=60))
        with patch.object(
            store_group.item_store,
            "release_if_expired",
            AsyncMock(side_effect=ConcurrencyConflictError()),
        ):
            report = await reclaim.sweep(TIMEOUT, now)

        assert report.reclaimed_count == 0
        assert report.failures[0].error_type == "ConcurrencyConflictError"

    async def test_completed_meanwhile_is_skipped(
        self, reclaim, guard, store_group, make_item, now
    ):
        item = await make_item(**_assigned(now=now, minutes_ago=60))
        stale = await reclaim.list_expired(TIMEOUT, now)
        await guard.complete(item.item_id, "alice", now)

        with patch.object(
            store_group.item_store, "list_expired", AsyncMock(return_value=stale)
        ):
            report = await reclaim.sweep(TIMEOUT, now)

        assert report.skipped_item_ids == [item.item_id]
        assert report.reclaimed_count == 0
        stored = await store_group.item_store.get_item(item.item_id)
        assert stored.lifecycle_state == LifecycleState.DONE
        assert stored.assigned_staff == "alice"


class TestSweepBounds:
    async def test_max_items_truncates(self, reclaim, make_item, now):
        for minutes in (20, 30, 40):
            await make_item(**_assigned(now=now, minutes_ago=minutes))

        report = await reclaim.sweep(TIMEOUT, now, max_items=2)
        assert report.reclaimed_count == 2
        assert report.truncated is True

        rest = await reclaim.sweep(TIMEOUT, now, max_items=2)
        assert rest.reclaimed_count == 1
        assert rest.truncated is False

    async def test_max_items_exact_is_not_truncated(self, reclaim, make_item, now):
        for minutes in (20, 30):
            await make_item(**_assigned(now=now, minutes_ago=minutes))
        report = await reclaim.sweep(TIMEOUT, now, max_items=2)
        assert report.truncated is False

    async def test_zero_duration_stops_before_first_item(self, reclaim, make_item, now):
        await make_item(**_assigned(now=now, minutes_ago=20))

        report = await reclaim.sweep(TIMEOUT, now, max_duration=0)
        assert report.truncated is True
        assert report.reclaimed_count == 0
        assert await reclaim.count_expired(TIMEOUT, now) == 1


class TestReclaimNotifications:
    async def test_staff_and_owner_notified(self, reclaim, notifier, make_item, now):
        item = await make_item(owner="manager-1", **_assigned(now=now, minutes_ago=20))
        await reclaim.sweep(TIMEOUT, now)

        assert notifier.recipients(NotificationKind.ITEM_RECLAIMED) == ["alice", "manager-1"]
        payload = notifier.sent[0][2]
        assert payload["item_id"] == item.item_id
        assert payload["previous_staff"] == "alice"
        assert payload["actor"] == SYSTEM_ACTOR

    async def test_owner_who_is_assignee_notified_once(self, reclaim, notifier, make_item, now):
        await make_item(owner="alice", **_assigned(now=now, minutes_ago=20))
        await reclaim.sweep(TIMEOUT, now)
        assert notifier.recipients(NotificationKind.ITEM_RECLAIMED) == ["alice"]

    async def test_notifier_failure_keeps_reclaim(
        self, store_group, config, failing_notifier, make_item, now
    ):
        service = ReclaimService(store_group, config, notifier=failing_notifier)
        await make_item(**_assigned(now=now, minutes_ago=20))

        report = await service.sweep(TIMEOUT, now)
        assert report.reclaimed_count == 1
        assert report.failures == []
        assert failing_notifier.attempts == 2

    async def test_audit_entry(self, reclaim, store_group, make_item, now):
        item = await make_item(**_assigned(now=now, minutes_ago=20))
        await reclaim.sweep(TIMEOUT, now)

        entries = await store_group.audit_store.list_for_item(item.item_id)
        assert len(entries) == 1
        entry = entries[0]
        assert entry.action == AuditAction.AUTO_RESET
        assert entry.actor == SYSTEM_ACTOR
        assert entry.old_staff == "alice"
        assert entry.new_staff is None
        assert entry.old_state == LifecycleState.IN_PROGRESS
        assert entry.new_state == LifecycleState.UNASSIGNED
        assert item.assigned_at.isoformat() in entry.detail


class TestExpiredQueries:
    async def test_count_list_and_is_expired_agree(self, reclaim, make_item, now):
        expired = await make_item(**_assigned(now=now, minutes_ago=20))
        fresh = await make_item(**_assigned(staff="bob", now=now, minutes_ago=5))

        assert await reclaim.count_expired(TIMEOUT, now) == 1
        assert [i.item_id for i in await reclaim.list_expired(TIMEOUT, now)] == [
            expired.item_id
        ]
        assert await reclaim.is_expired(expired.item_id, TIMEOUT, now) is True
        assert await reclaim.is_expired(fresh.item_id, TIMEOUT, now) is False

    async def test_list_limit(self, reclaim, make_item, now):
        for minutes in (20, 30, 40):
            await make_item(**_assigned(now=now, minutes_ago=minutes))
        assert len(await reclaim.list_expired(TIMEOUT, now, limit=2)) == 2


class TestReclaimItem:
    async def test_manual_reclaim_of_expired(self, reclaim, store_group, notifier, make_item, now):
        item = await make_item(**_assigned(now=now, minutes_ago=20))
        result = await reclaim.reclaim_item(item.item_id, "admin", now, TIMEOUT)

        assert isinstance(result, Accepted)
        assert result.item.lifecycle_state == LifecycleState.UNASSIGNED
        assert result.item.assigned_staff is None
        entries = await store_group.audit_store.list_for_item(item.item_id)
        assert entries[0].action == AuditAction.AUTO_RESET
        assert entries[0].actor == "admin"
        assert "alice" in notifier.recipients(NotificationKind.ITEM_RECLAIMED)

    async def test_not_yet_expired_rejected(self, reclaim, make_item, now):
        item = await make_item(**_assigned(now=now, minutes_ago=5))
        result = await reclaim.reclaim_item(item.item_id, "admin", now, TIMEOUT)

        assert result.reason == RejectionReason.INVALID_STATE
        assert result.details["state"] == "IN_PROGRESS"
        assert result.details["assigned_at"] == (now - timedelta(minutes=5)).isoformat()

    async def test_force_ignores_timeout(self, reclaim, make_item, now):
        item = await make_item(**_assigned(now=now, minutes_ago=5))
        result = await reclaim.reclaim_item(item.item_id, "admin", now, TIMEOUT, force=True)
        assert isinstance(result, Accepted)

    async def test_force_does_not_touch_terminal(self, reclaim, make_item, now):
        item = await make_item(**_assigned(now=now, minutes_ago=60, state=LifecycleState.DONE))
        result = await reclaim.reclaim_item(item.item_id, "admin", now, force=True)
        assert result.reason == RejectionReason.INVALID_STATE

    async def test_unassigned_rejected(self, reclaim, make_item, now):
        item = await make_item()
        result = await reclaim.reclaim_item(item.item_id, "admin", now, force=True)
        assert result.reason == RejectionReason.INVALID_STATE
        assert result.details["assigned_at"] is None

    async def test_missing(self, reclaim, now):
        result = await reclaim.reclaim_item("01JNONEXISTENT000000000000", "admin", now)
        assert result.reason == RejectionReason.NOT_FOUND

    async def test_conflict(self, reclaim, store_group, make_item, now):
        item = await make_item(**_assigned(now=now, minutes_ago=20))
        with patch.object(
            store_group.item_store,
            "release_if_expired",
            AsyncMock(side_effect=ConcurrencyConflictError(item.item_id)),
        ):
            result = await reclaim.reclaim_item(item.item_id, "admin", now, TIMEOUT)
        assert result.reason == RejectionReason.CONCURRENCY_CONFLICT


class TestStoreFailures:
    async def test_closed_connection_is_unavailable(self, reclaim, store_group, make_item, now):
        item = await make_item(**_assigned(now=now))
        await store_group.conn.close()

        with pytest.raises(StoreUnavailableError):
            await reclaim.reclaim_item(item.item_id, "admin", now, TIMEOUT)
        with pytest.raises(StoreUnavailableError):
            await reclaim.count_expired(TIMEOUT, now)
        with pytest.raises(StoreUnavailableError):
            await reclaim.sweep(TIMEOUT, now)

"""AuditStore SQLite 实现

审计表 append-only：只允许插入，不允许更新或删除。
写方法不自动提交，与被审计的状态变更共用一个事务。
"""

from datetime import datetime

import aiosqlite
from ulid import ULID

from ..models.audit import AuditEntry
from ..models.enums import AuditAction, LifecycleState
from ..timeutil import from_db_ts, to_db_ts
from .transaction import map_read_errors


class SqliteAuditStore:
    """AuditStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def append(self, entry: AuditEntry) -> None:
        """追加审计记录（append-only）"""
        await self._conn.execute(
            """
            INSERT INTO audit_log (entry_id, item_id, ts, action, actor,
                                   old_staff, new_staff, old_state, new_state, detail)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.entry_id,
                entry.item_id,
                to_db_ts(entry.ts),
                entry.action.value,
                entry.actor,
                entry.old_staff,
                entry.new_staff,
                entry.old_state.value if entry.old_state else None,
                entry.new_state.value if entry.new_state else None,
                entry.detail,
            ),
        )

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
        """记录分配变更（分配 / 取消分配）"""
        entry = AuditEntry(
            entry_id=str(ULID()),
            item_id=item_id,
            ts=ts,
            action=AuditAction.ASSIGN_STAFF if new_staff else AuditAction.UNASSIGN_STAFF,
            actor=actor,
            old_staff=old_staff,
            new_staff=new_staff,
            old_state=old_state,
            new_state=new_state,
        )
        await self.append(entry)
        return entry

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
        entry = AuditEntry(
            entry_id=str(ULID()),
            item_id=item_id,
            ts=ts,
            action=AuditAction.AUTO_RESET,
            actor=actor,
            old_staff=previous_staff,
            new_staff=None,
            old_state=old_state,
            new_state=LifecycleState.UNASSIGNED,
            detail=detail,
        )
        await self.append(entry)
        return entry

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
        """记录生命周期流转（完成 / 返工 / 取消）"""
        entry = AuditEntry(
            entry_id=str(ULID()),
            item_id=item_id,
            ts=ts,
            action=(
                AuditAction.CANCEL
                if new_state == LifecycleState.CANCELLED
                else AuditAction.UPDATE_STATUS
            ),
            actor=actor,
            old_staff=staff,
            new_staff=None if new_state == LifecycleState.CANCELLED else staff,
            old_state=old_state,
            new_state=new_state,
            detail=detail,
        )
        await self.append(entry)
        return entry

    @map_read_errors
    async def list_for_item(self, item_id: str) -> list[AuditEntry]:
        """查询指定条目的审计记录，按时间正序"""
        cursor = await self._conn.execute(
            """
            SELECT entry_id, item_id, ts, action, actor,
                   old_staff, new_staff, old_state, new_state, detail
            FROM audit_log WHERE item_id = ?
            ORDER BY ts ASC, entry_id ASC
            """,
            (item_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_entry(row) for row in rows]

    @staticmethod
    def _row_to_entry(row: aiosqlite.Row) -> AuditEntry:
        return AuditEntry(
            entry_id=row[0],
            item_id=row[1],
            ts=from_db_ts(row[2]),
            action=AuditAction(row[3]),
            actor=row[4],
            old_staff=row[5],
            new_staff=row[6],
            old_state=LifecycleState(row[7]) if row[7] else None,
            new_state=LifecycleState(row[8]) if row[8] else None,
            detail=row[9],
        )

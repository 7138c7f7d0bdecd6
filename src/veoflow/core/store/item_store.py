"""ItemStore SQLite 实现

除 create/get/list 外，分配字段只通过 compare-and-write 方法修改：
UPDATE 的 WHERE 子句携带期望的旧状态，返回值表示是否真正写入。
写方法不自动提交事务，需由调用方（write_transaction）管理；
读方法的存储故障经 map_read_errors 映射为领域异常。
"""

from datetime import datetime, timedelta

import aiosqlite

from ..models.enums import ACTIVE_STATES, TERMINAL_STATES, LifecycleState
from ..models.item import WorkItem
from ..timeutil import from_db_ts, to_db_ts
from .transaction import map_read_errors

_COLUMNS = (
    "item_id, title, owner, assigned_staff, assigned_at, lifecycle_state, "
    "urgent, due_at, deleted, created_at, updated_at"
)


def _in_list(states: frozenset[LifecycleState]) -> str:
    return ", ".join(f"'{s.value}'" for s in sorted(states))


# 回收谓词：Sweep / CountExpired / 单条回收共用，保证三者永远一致
_EXPIRED_WHERE = f"""
    deleted = 0
    AND assigned_staff IS NOT NULL
    AND assigned_staff != ''
    AND assigned_at IS NOT NULL
    AND lifecycle_state IN ({_in_list(ACTIVE_STATES)})
"""


def expired_clause(cutoff: datetime | None) -> tuple[str, tuple]:
    """回收谓词 SQL 片段；cutoff 为 None 时不限制分配时间（强制回收）"""
    if cutoff is None:
        return _EXPIRED_WHERE, ()
    return _EXPIRED_WHERE + " AND assigned_at < ?", (to_db_ts(cutoff),)


def active_workload_clause(
    staff_id: str,
    now: datetime,
    urgent_window: timedelta | None,
) -> tuple[str, tuple]:
    """工作量谓词 SQL 片段：进行中 / 返工中 / 紧急（按条目去重）"""
    sql = f"""
        deleted = 0
        AND assigned_staff = ?
        AND (
            lifecycle_state IN ({_in_list(ACTIVE_STATES)})
            OR urgent = 1
    """
    params: list = [staff_id]
    if urgent_window is not None:
        sql += f"""
            OR (
                due_at IS NOT NULL
                AND due_at < ?
                AND lifecycle_state NOT IN ({_in_list(TERMINAL_STATES)})
            )
        """
        params.append(to_db_ts(now + urgent_window))
    sql += ")"
    return sql, tuple(params)


class SqliteItemStore:
    """ItemStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_item(self, item: WorkItem) -> None:
        """创建条目记录"""
        await self._conn.execute(
            f"INSERT INTO work_items ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                item.item_id,
                item.title,
                item.owner,
                item.assigned_staff,
                to_db_ts(item.assigned_at) if item.assigned_at else None,
                item.lifecycle_state.value,
                int(item.urgent),
                to_db_ts(item.due_at) if item.due_at else None,
                int(item.deleted),
                to_db_ts(item.created_at),
                to_db_ts(item.updated_at),
            ),
        )

    @map_read_errors
    async def get_item(self, item_id: str) -> WorkItem | None:
        """根据 item_id 查询条目（包含已软删除的条目）"""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM work_items WHERE item_id = ?",
            (item_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_item(row)

    @map_read_errors
    async def list_items(
        self,
        assigned_staff: str | None = None,
        state: LifecycleState | None = None,
    ) -> list[WorkItem]:
        """查询未删除条目，按 created_at 倒序"""
        sql = f"SELECT {_COLUMNS} FROM work_items WHERE deleted = 0"
        params: list = []
        if assigned_staff is not None:
            sql += " AND assigned_staff = ?"
            params.append(assigned_staff)
        if state is not None:
            sql += " AND lifecycle_state = ?"
            params.append(state.value)
        sql += " ORDER BY created_at DESC"
        cursor = await self._conn.execute(sql, tuple(params))
        rows = await cursor.fetchall()
        return [self._row_to_item(row) for row in rows]

    async def soft_delete(self, item_id: str, now: datetime) -> bool:
        cursor = await self._conn.execute(
            "UPDATE work_items SET deleted = 1, updated_at = ? WHERE item_id = ? AND deleted = 0",
            (to_db_ts(now), item_id),
        )
        return cursor.rowcount == 1

    # ---- 工作量 / 配额查询 ----

    @map_read_errors
    async def count_active_for_staff(
        self,
        staff_id: str,
        now: datetime,
        urgent_window: timedelta | None = None,
    ) -> int:
        where, params = active_workload_clause(staff_id, now, urgent_window)
        cursor = await self._conn.execute(
            f"SELECT COUNT(*) FROM work_items WHERE {where}",
            params,
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    @map_read_errors
    async def list_active_for_staff(
        self,
        staff_id: str,
        now: datetime,
        urgent_window: timedelta | None = None,
    ) -> list[WorkItem]:
        where, params = active_workload_clause(staff_id, now, urgent_window)
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM work_items WHERE {where} ORDER BY created_at DESC",
            params,
        )
        rows = await cursor.fetchall()
        return [self._row_to_item(row) for row in rows]

    @map_read_errors
    async def count_assigned_between(
        self,
        staff_id: str,
        start: datetime,
        end: datetime,
    ) -> int:
        """统计 [start, end) 内分配给员工的条目数（不论当前状态）"""
        cursor = await self._conn.execute(
            """
            SELECT COUNT(*) FROM work_items
            WHERE deleted = 0
              AND assigned_staff = ?
              AND assigned_at >= ?
              AND assigned_at < ?
            """,
            (staff_id, to_db_ts(start), to_db_ts(end)),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    # ---- 回收查询 ----

    @map_read_errors
    async def count_expired(self, cutoff: datetime) -> int:
        where, params = expired_clause(cutoff)
        cursor = await self._conn.execute(
            f"SELECT COUNT(*) FROM work_items WHERE {where}",
            params,
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    @map_read_errors
    async def list_expired(self, cutoff: datetime, limit: int | None = None) -> list[WorkItem]:
        """查询已超时的分配，最久未处理的排在最前"""
        where, params = expired_clause(cutoff)
        sql = f"SELECT {_COLUMNS} FROM work_items WHERE {where} ORDER BY assigned_at ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params = (*params, limit)
        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_item(row) for row in rows]

    @map_read_errors
    async def is_expired(self, item_id: str, cutoff: datetime) -> bool:
        where, params = expired_clause(cutoff)
        cursor = await self._conn.execute(
            f"SELECT 1 FROM work_items WHERE item_id = ? AND {where}",
            (item_id, *params),
        )
        return await cursor.fetchone() is not None

    # ---- compare-and-write ----

    async def assign_if_unassigned(
        self,
        item_id: str,
        staff_id: str,
        now: datetime,
    ) -> bool:
        """UNASSIGNED -> IN_PROGRESS，并写入 assigned_staff / assigned_at"""
        cursor = await self._conn.execute(
            """
            UPDATE work_items
            SET assigned_staff = ?, assigned_at = ?, lifecycle_state = ?, updated_at = ?
            WHERE item_id = ?
              AND deleted = 0
              AND lifecycle_state = ?
              AND assigned_staff IS NULL
            """,
            (
                staff_id,
                to_db_ts(now),
                LifecycleState.IN_PROGRESS.value,
                to_db_ts(now),
                item_id,
                LifecycleState.UNASSIGNED.value,
            ),
        )
        return cursor.rowcount == 1

    async def release_if_expired(
        self,
        item_id: str,
        cutoff: datetime | None,
        now: datetime,
    ) -> bool:
        """回收：谓词仍成立时清空分配和紧急标记，回到 UNASSIGNED"""
        where, params = expired_clause(cutoff)
        cursor = await self._conn.execute(
            f"""
            UPDATE work_items
            SET assigned_staff = NULL, assigned_at = NULL, urgent = 0,
                lifecycle_state = ?, updated_at = ?
            WHERE item_id = ? AND {where}
            """,
            (LifecycleState.UNASSIGNED.value, to_db_ts(now), item_id, *params),
        )
        return cursor.rowcount == 1

    async def update_state(
        self,
        item_id: str,
        expected_state: LifecycleState,
        new_state: LifecycleState,
        now: datetime,
        *,
        clear_assignment: bool = False,
        urgent: bool | None = None,
        restamp_assigned_at: bool = False,
    ) -> bool:
        """状态流转（compare-and-write on lifecycle_state）"""
        assignments = ["lifecycle_state = ?", "updated_at = ?"]
        params: list = [new_state.value, to_db_ts(now)]
        if clear_assignment:
            assignments.append("assigned_staff = NULL")
            assignments.append("assigned_at = NULL")
        elif restamp_assigned_at:
            assignments.append("assigned_at = ?")
            params.append(to_db_ts(now))
        if urgent is not None:
            assignments.append("urgent = ?")
            params.append(int(urgent))

        sql = f"""
            UPDATE work_items
            SET {", ".join(assignments)}
            WHERE item_id = ? AND deleted = 0 AND lifecycle_state = ?
        """
        params.extend([item_id, expected_state.value])
        if restamp_assigned_at:
            sql += " AND assigned_staff IS NOT NULL"
        cursor = await self._conn.execute(sql, tuple(params))
        return cursor.rowcount == 1

    @staticmethod
    def _row_to_item(row: aiosqlite.Row) -> WorkItem:
        """将数据库行转换为 WorkItem 模型"""
        return WorkItem(
            item_id=row[0],
            title=row[1],
            owner=row[2],
            assigned_staff=row[3],
            assigned_at=from_db_ts(row[4]),
            lifecycle_state=LifecycleState(row[5]),
            urgent=bool(row[6]),
            due_at=from_db_ts(row[7]),
            deleted=bool(row[8]),
            created_at=from_db_ts(row[9]),
            updated_at=from_db_ts(row[10]),
        )

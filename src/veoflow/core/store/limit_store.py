"""StaffLimitStore SQLite 实现

写方法不自动提交事务，需由调用方管理事务。
"""

from datetime import datetime

import aiosqlite

from ..models.staff_limit import StaffLimit
from ..timeutil import from_db_ts, to_db_ts
from .transaction import map_read_errors

_COLUMNS = "limit_id, staff_id, lock_until, max_per_day, active, created_at, created_by"


class SqliteStaffLimitStore:
    """StaffLimitStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def insert_limit(self, limit: StaffLimit) -> None:
        await self._conn.execute(
            f"INSERT INTO staff_limits ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                limit.limit_id,
                limit.staff_id,
                to_db_ts(limit.lock_until),
                limit.max_per_day,
                int(limit.active),
                to_db_ts(limit.created_at),
                limit.created_by,
            ),
        )

    async def deactivate_all(self, staff_id: str) -> int:
        """停用员工的全部 active 限制，返回停用条数"""
        cursor = await self._conn.execute(
            "UPDATE staff_limits SET active = 0 WHERE staff_id = ? AND active = 1",
            (staff_id,),
        )
        return cursor.rowcount

    async def deactivate_expired(self, now: datetime) -> int:
        """停用 lock_until <= now 的 active 限制"""
        cursor = await self._conn.execute(
            "UPDATE staff_limits SET active = 0 WHERE active = 1 AND lock_until <= ?",
            (to_db_ts(now),),
        )
        return cursor.rowcount

    @map_read_errors
    async def get_active_limit(self, staff_id: str, now: datetime) -> StaffLimit | None:
        """查询当前生效的限制（active 且 lock_until > now）"""
        cursor = await self._conn.execute(
            f"""
            SELECT {_COLUMNS} FROM staff_limits
            WHERE staff_id = ? AND active = 1 AND lock_until > ?
            ORDER BY created_at DESC, limit_id DESC
            LIMIT 1
            """,
            (staff_id, to_db_ts(now)),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_limit(row)

    @map_read_errors
    async def list_active(self, now: datetime) -> list[StaffLimit]:
        cursor = await self._conn.execute(
            f"""
            SELECT {_COLUMNS} FROM staff_limits
            WHERE active = 1 AND lock_until > ?
            ORDER BY created_at DESC, limit_id DESC
            """,
            (to_db_ts(now),),
        )
        rows = await cursor.fetchall()
        return [self._row_to_limit(row) for row in rows]

    @map_read_errors
    async def list_for_staff(self, staff_id: str) -> list[StaffLimit]:
        """员工全部限制（含已停用），按创建时间倒序"""
        cursor = await self._conn.execute(
            f"""
            SELECT {_COLUMNS} FROM staff_limits
            WHERE staff_id = ?
            ORDER BY created_at DESC, limit_id DESC
            """,
            (staff_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_limit(row) for row in rows]

    @staticmethod
    def _row_to_limit(row: aiosqlite.Row) -> StaffLimit:
        return StaffLimit(
            limit_id=row[0],
            staff_id=row[1],
            lock_until=from_db_ts(row[2]),
            max_per_day=row[3],
            active=bool(row[4]),
            created_at=from_db_ts(row[5]),
            created_by=row[6],
        )

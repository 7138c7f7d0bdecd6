"""veoflow Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

import asyncio
from pathlib import Path

import aiosqlite

from .audit_store import SqliteAuditStore
from .item_store import SqliteItemStore
from .limit_store import SqliteStaffLimitStore
from .protocols import AuditRecorder, Notifier
from .sqlite_init import init_db
from .transaction import drain, map_db_error, write_transaction


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接和同一把写锁"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.item_store = SqliteItemStore(conn)
        self.limit_store = SqliteStaffLimitStore(conn)
        self.audit_store = SqliteAuditStore(conn)
        # 同一连接上的写事务必须串行
        self.write_lock = asyncio.Lock()

    async def close(self, drain_timeout: float = 0) -> None:
        """排空进行中的写事务后关闭连接"""
        if drain_timeout > 0:
            await drain(self, drain_timeout)
        await self.conn.close()


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    连接以 autocommit 模式打开（isolation_level=None），
    事务边界全部由 write_transaction 显式控制。

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path, isolation_level=None)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteItemStore",
    "SqliteStaffLimitStore",
    "SqliteAuditStore",
    "AuditRecorder",
    "Notifier",
    "init_db",
    "write_transaction",
    "map_db_error",
    "drain",
]

"""SQLite 数据库初始化

PRAGMA 配置 + 三张表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# work_items 表 DDL
_WORK_ITEMS_DDL = """
CREATE TABLE IF NOT EXISTS work_items (
    item_id          TEXT PRIMARY KEY,
    title            TEXT NOT NULL DEFAULT '',
    owner            TEXT,
    assigned_staff   TEXT,
    assigned_at      TEXT,
    lifecycle_state  TEXT NOT NULL DEFAULT 'UNASSIGNED',
    urgent           INTEGER NOT NULL DEFAULT 0,
    due_at           TEXT,
    deleted          INTEGER NOT NULL DEFAULT 0,
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL,

    CHECK ((assigned_staff IS NULL) = (assigned_at IS NULL))
);
"""

_WORK_ITEMS_INDEXES = [
    # 工作量查询：按员工 + 状态
    (
        "CREATE INDEX IF NOT EXISTS idx_items_staff_state "
        "ON work_items(assigned_staff, lifecycle_state, deleted);"
    ),
    # 回收扫描：按分配时间 + 状态
    (
        "CREATE INDEX IF NOT EXISTS idx_items_assigned_at "
        "ON work_items(assigned_at, lifecycle_state, deleted);"
    ),
]

# staff_limits 表 DDL
_STAFF_LIMITS_DDL = """
CREATE TABLE IF NOT EXISTS staff_limits (
    limit_id     TEXT PRIMARY KEY,
    staff_id     TEXT NOT NULL,
    lock_until   TEXT NOT NULL,
    max_per_day  INTEGER,
    active       INTEGER NOT NULL DEFAULT 1,
    created_at   TEXT NOT NULL,
    created_by   TEXT NOT NULL DEFAULT ''
);
"""

_STAFF_LIMITS_INDEXES = [
    # 每位员工至多一条 active 限制
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_limits_one_active "
        "ON staff_limits(staff_id) WHERE active = 1;"
    ),
    "CREATE INDEX IF NOT EXISTS idx_limits_staff_created ON staff_limits(staff_id, created_at DESC);",
]

# audit_log 表 DDL
_AUDIT_LOG_DDL = """
CREATE TABLE IF NOT EXISTS audit_log (
    entry_id    TEXT PRIMARY KEY,
    item_id     TEXT NOT NULL,
    ts          TEXT NOT NULL,
    action      TEXT NOT NULL,
    actor       TEXT NOT NULL,
    old_staff   TEXT,
    new_staff   TEXT,
    old_state   TEXT,
    new_state   TEXT,
    detail      TEXT NOT NULL DEFAULT '',

    FOREIGN KEY (item_id) REFERENCES work_items(item_id)
);
"""

_AUDIT_LOG_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_audit_item_ts ON audit_log(item_id, ts);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    await conn.execute(_WORK_ITEMS_DDL)
    await conn.execute(_STAFF_LIMITS_DDL)
    await conn.execute(_AUDIT_LOG_DDL)

    # 创建索引
    for idx_sql in _WORK_ITEMS_INDEXES + _STAFF_LIMITS_INDEXES + _AUDIT_LOG_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"

"""写事务封装

所有写操作都经过 write_transaction：
1. 获取 StoreGroup 的进程内 asyncio.Lock（同一连接上的写者串行）
2. BEGIN IMMEDIATE 拿到 SQLite 写锁（跨进程串行，最多等待 busy_timeout）
3. 成功提交，任何异常回滚

aiosqlite 错误在此映射为领域异常（事务外的读方法经 map_read_errors 同样映射）：
  locked / busy -> ConcurrencyConflictError
  其他 OperationalError / DatabaseError -> StoreUnavailableError
"""

import asyncio
import functools
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, ParamSpec, TypeVar

import aiosqlite
import structlog

from ..exceptions import ConcurrencyConflictError, StoreUnavailableError

if TYPE_CHECKING:
    from . import StoreGroup

log = structlog.get_logger()

P = ParamSpec("P")
T = TypeVar("T")


def _is_lock_error(e: Exception) -> bool:
    text = str(e).lower()
    return "locked" in text or "busy" in text


def map_db_error(operation: str, e: Exception) -> Exception:
    """aiosqlite 异常 -> 领域异常"""
    if isinstance(e, aiosqlite.OperationalError) and _is_lock_error(e):
        return ConcurrencyConflictError(message=f"数据库写锁竞争: {operation}")
    return StoreUnavailableError(operation, e)


def map_read_errors(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """Store 读方法装饰器：aiosqlite 错误 / 已关闭连接 -> 领域异常

    aiosqlite 对已关闭的连接抛出 ValueError，同样视为存储不可用。
    """

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await func(*args, **kwargs)
        except (aiosqlite.Error, ValueError) as e:
            raise map_db_error(func.__name__, e) from e

    return wrapper


@asynccontextmanager
async def write_transaction(
    store_group: "StoreGroup",
    operation: str = "write",
) -> AsyncIterator[aiosqlite.Connection]:
    """在 BEGIN IMMEDIATE 事务内执行写操作

    Args:
        store_group: Store 实例组
        operation: 操作名（用于错误信息和日志）

    Raises:
        ConcurrencyConflictError: 拿不到写锁，或事务体内检测到冲突
        StoreUnavailableError: 其他存储故障
    """
    conn = store_group.conn
    async with store_group.write_lock:
        try:
            await conn.execute("BEGIN IMMEDIATE")
        except (aiosqlite.DatabaseError, ValueError) as e:
            # aiosqlite 对已关闭的连接抛出 ValueError
            raise map_db_error(operation, e) from e

        try:
            yield conn
            await conn.commit()
        except BaseException as e:
            try:
                await conn.rollback()
            except aiosqlite.Error as rollback_error:
                log.warning(
                    "transaction_rollback_failed",
                    operation=operation,
                    error=str(rollback_error),
                )
            if isinstance(e, aiosqlite.DatabaseError):
                raise map_db_error(operation, e) from e
            raise


async def drain(store_group: "StoreGroup", timeout: float) -> bool:
    """等待进行中的写事务结束

    Returns:
        True 如果在超时前拿到写锁
    """
    try:
        await asyncio.wait_for(store_group.write_lock.acquire(), timeout=timeout)
    except TimeoutError:
        log.warning("store_drain_timeout", timeout=timeout)
        return False
    store_group.write_lock.release()
    return True

"""CLI 入口模块 -- python -m veoflow.core <command>

支持的命令：
  sweep            立即执行一次超时回收扫描
  expired          列出当前已超时的分配
  cleanup-limits   停用已过期的员工限制
"""

import asyncio
import sys
from datetime import UTC, datetime

from .config import get_db_path, load_assignment_config

_USAGE = """用法: python -m veoflow.core <command>
命令:
  sweep            立即执行一次超时回收扫描
  expired          列出当前已超时的分配
  cleanup-limits   停用已过期的员工限制"""


def main(argv: list[str] | None = None) -> int:
    """CLI 主入口"""
    args = sys.argv[1:] if argv is None else argv
    if not args:
        print(_USAGE)
        return 1

    command = args[0]
    commands = {
        "sweep": run_sweep,
        "expired": show_expired,
        "cleanup-limits": cleanup_limits,
    }
    handler = commands.get(command)
    if handler is None:
        print(f"未知命令: {command}")
        print(f"可用命令: {', '.join(commands)}")
        return 1

    asyncio.run(handler())
    return 0


async def run_sweep() -> None:
    """执行一次回收扫描"""
    from .reclaim import ReclaimService
    from .store import create_store_group

    config = load_assignment_config()
    db_path = get_db_path()
    print(f"数据库路径: {db_path}")
    print(f"分配超时: {config.assignment_timeout_min} 分钟")

    store_group = await create_store_group(db_path)
    try:
        report = await ReclaimService(store_group, config).sweep(
            config.assignment_timeout,
            datetime.now(UTC),
            max_items=config.sweep_batch_limit,
            max_duration=config.sweep_max_duration_s,
        )
        print(
            f"扫描完成: 回收 {report.reclaimed_count} 条，"
            f"跳过 {len(report.skipped_item_ids)} 条，"
            f"失败 {len(report.failures)} 条"
        )
        for failure in report.failures:
            print(f"  失败 {failure.item_id}: {failure.error_type} {failure.message}")
        if report.truncated:
            print("本次扫描达到上限提前结束，剩余条目留给下一次扫描")
    finally:
        await store_group.close()


async def show_expired() -> None:
    """列出已超时的分配"""
    from .reclaim import ReclaimService
    from .store import create_store_group

    config = load_assignment_config()
    store_group = await create_store_group(get_db_path())
    try:
        items = await ReclaimService(store_group, config).list_expired(
            config.assignment_timeout, datetime.now(UTC)
        )
        print(f"已超时分配: {len(items)} 条")
        for item in items:
            print(
                f"  {item.item_id}  {item.assigned_staff}  "
                f"{item.lifecycle_state.value}  {item.assigned_at.isoformat()}"
            )
    finally:
        await store_group.close()


async def cleanup_limits() -> None:
    """停用已过期的员工限制"""
    from .limits import StaffLimitRegistry
    from .store import create_store_group

    config = load_assignment_config()
    store_group = await create_store_group(get_db_path())
    try:
        count = await StaffLimitRegistry(store_group, config).deactivate_expired(
            datetime.now(UTC)
        )
        print(f"已停用过期限制 {count} 条")
    finally:
        await store_group.close()


if __name__ == "__main__":
    sys.exit(main())

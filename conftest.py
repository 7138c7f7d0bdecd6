"""全局 pytest 配置 -- 临时 SQLite 数据库 + 分配子系统 fixture"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from ulid import ULID

from veoflow.core.config import AssignmentConfig
from veoflow.core.guard import AssignmentGuard
from veoflow.core.limits import StaffLimitRegistry
from veoflow.core.models import NotificationKind, WorkItem
from veoflow.core.reclaim import ReclaimService
from veoflow.core.store import StoreGroup, create_store_group, write_transaction
from veoflow.core.workload import WorkloadEvaluator

# 固定的测试基准时间（UTC 周二上午）
BASE_NOW = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


class RecordingNotifier:
    """记录所有通知的 Notifier 替身"""

    def __init__(self) -> None:
        self.sent: list[tuple[str, NotificationKind, dict[str, Any]]] = []

    async def notify(
        self,
        recipient: str,
        kind: NotificationKind,
        payload: dict[str, Any],
    ) -> None:
        self.sent.append((recipient, kind, payload))

    def recipients(self, kind: NotificationKind) -> list[str]:
        return [r for r, k, _ in self.sent if k == kind]


class FailingNotifier:
    """投递总是失败的 Notifier 替身"""

    def __init__(self) -> None:
        self.attempts = 0

    async def notify(
        self,
        recipient: str,
        kind: NotificationKind,
        payload: dict[str, Any],
    ) -> None:
        self.attempts += 1
        raise ConnectionError("notification channel down")


@pytest.fixture
def now() -> datetime:
    return BASE_NOW


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "sqlite" / "test.db"


@pytest_asyncio.fixture
async def store_group(tmp_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """提供已初始化的 StoreGroup"""
    sg = await create_store_group(str(tmp_db_path))
    yield sg
    await sg.conn.close()


@pytest.fixture
def config() -> AssignmentConfig:
    return AssignmentConfig()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def registry(store_group: StoreGroup, config: AssignmentConfig) -> StaffLimitRegistry:
    return StaffLimitRegistry(store_group, config)


@pytest.fixture
def evaluator(store_group: StoreGroup, config: AssignmentConfig) -> WorkloadEvaluator:
    return WorkloadEvaluator(store_group, config)


@pytest.fixture
def guard(
    store_group: StoreGroup,
    registry: StaffLimitRegistry,
    evaluator: WorkloadEvaluator,
    config: AssignmentConfig,
    notifier: RecordingNotifier,
) -> AssignmentGuard:
    return AssignmentGuard(store_group, registry, evaluator, config, notifier=notifier)


@pytest.fixture
def reclaim(
    store_group: StoreGroup,
    config: AssignmentConfig,
    notifier: RecordingNotifier,
) -> ReclaimService:
    return ReclaimService(store_group, config, notifier=notifier)


@pytest.fixture
def make_item(store_group: StoreGroup):
    """创建条目的工厂：await make_item(title=..., owner=..., **fields)"""

    async def _make(
        title: str = "item",
        owner: str | None = "manager-1",
        created_at: datetime = BASE_NOW - timedelta(days=1),
        **fields: Any,
    ) -> WorkItem:
        item = WorkItem(
            item_id=str(ULID()),
            title=title,
            owner=owner,
            created_at=created_at,
            updated_at=created_at,
            **fields,
        )
        async with write_transaction(store_group):
            await store_group.item_store.create_item(item)
        return item

    return _make


@pytest.fixture
def failing_notifier() -> FailingNotifier:
    return FailingNotifier()

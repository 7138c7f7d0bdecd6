"""gateway 测试配置 -- 绕过 lifespan 手动装配服务 + httpx AsyncClient"""

import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from ulid import ULID

from veoflow.core.config import AssignmentConfig
from veoflow.core.models import LifecycleState, WorkItem
from veoflow.core.store import create_store_group, write_transaction

_ENV_KEYS = ["VEOFLOW_DB_PATH", "VEOFLOW_SCHEDULER_ENABLED", "LOGFIRE_SEND_TO_LOGFIRE"]


@pytest_asyncio.fixture
async def test_app(tmp_path: Path):
    """创建测试用 FastAPI app（调度器不启动）"""
    os.environ["VEOFLOW_DB_PATH"] = str(tmp_path / "sqlite" / "test.db")
    os.environ["VEOFLOW_SCHEDULER_ENABLED"] = "false"
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from veoflow.gateway.main import attach_services, create_app

    app = create_app()

    # 手动初始化（绕过 lifespan）
    store_group = await create_store_group(str(tmp_path / "sqlite" / "test.db"))
    attach_services(app, store_group, AssignmentConfig(scheduler_enabled=False))

    yield app

    await store_group.conn.close()
    for key in _ENV_KEYS:
        os.environ.pop(key, None)


@pytest_asyncio.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def seed_item(test_app):
    """直接写库创建条目（可指定分配字段），用于构造超时场景"""

    async def _seed(
        staff: str | None = None,
        minutes_ago: int = 0,
        state: LifecycleState = LifecycleState.IN_PROGRESS,
        **fields: Any,
    ) -> WorkItem:
        now = datetime.now(UTC)
        if staff is not None:
            fields.update(
                assigned_staff=staff,
                assigned_at=now - timedelta(minutes=minutes_ago),
                lifecycle_state=state,
            )
        item = WorkItem(
            item_id=str(ULID()),
            title=fields.pop("title", "seeded"),
            owner=fields.pop("owner", "manager-1"),
            created_at=now - timedelta(days=1),
            updated_at=now - timedelta(days=1),
            **fields,
        )
        store_group = test_app.state.store_group
        async with write_transaction(store_group):
            await store_group.item_store.create_item(item)
        return item

    return _seed


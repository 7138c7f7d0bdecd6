"""集成测试共享 fixture"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from veoflow.core.config import AssignmentConfig
from veoflow.core.store import create_store_group


@pytest_asyncio.fixture
async def integration_app(tmp_path: Path):
    """集成测试用 FastAPI app"""
    os.environ["VEOFLOW_DB_PATH"] = str(tmp_path / "test.db")
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from veoflow.gateway.main import attach_services, create_app

    app = create_app()

    store_group = await create_store_group(str(tmp_path / "test.db"))
    attach_services(app, store_group, AssignmentConfig(scheduler_enabled=False))

    yield app

    await store_group.conn.close()
    os.environ.pop("VEOFLOW_DB_PATH", None)
    os.environ.pop("LOGFIRE_SEND_TO_LOGFIRE", None)


@pytest_asyncio.fixture
async def client(integration_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=integration_app),
        base_url="http://test",
    ) as ac:
        yield ac

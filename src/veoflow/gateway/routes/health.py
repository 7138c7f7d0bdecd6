"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready:  Readiness 检查，包含 SQLite 连通性与回收调度器状态。
"""

import aiosqlite
import structlog
from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    """Readiness 检查

    检查项：
    1. sqlite: 数据库连通性
    2. scheduler: 启用时后台循环必须在运行；未启用返回 "disabled"
    """
    checks: dict = {}
    all_ok = True

    try:
        store_group = request.app.state.store_group
        cursor = await store_group.conn.execute("SELECT 1")
        await cursor.fetchone()
        checks["sqlite"] = "ok"
    except (aiosqlite.Error, ValueError, AttributeError) as e:
        log.warning("readiness_sqlite_failed", error=str(e))
        checks["sqlite"] = f"error: {e}"
        all_ok = False

    scheduler = getattr(request.app.state, "scheduler", None)
    config = getattr(request.app.state, "assignment_config", None)
    if config is not None and not config.scheduler_enabled:
        checks["scheduler"] = "disabled"
    elif scheduler is not None and scheduler.running:
        checks["scheduler"] = "ok"
    else:
        checks["scheduler"] = "not_running"
        all_ok = False
    if scheduler is not None:
        checks["sweep"] = scheduler.status()

    status_code = 200 if all_ok else 503
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "ready" if all_ok else "not_ready",
            "checks": checks,
        },
    )

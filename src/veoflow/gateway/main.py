"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭、分配/回收服务装配、
后台回收调度器启动与优雅关闭、路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from veoflow.core.config import AssignmentConfig, get_db_path, load_assignment_config
from veoflow.core.exceptions import VeoflowError
from veoflow.core.guard import AssignmentGuard
from veoflow.core.limits import StaffLimitRegistry
from veoflow.core.reclaim import ReclaimService
from veoflow.core.scheduler import SweepScheduler
from veoflow.core.store import StoreGroup, create_store_group
from veoflow.core.workload import WorkloadEvaluator

from .errors import veoflow_error_handler
from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import assignment, health, items, reclaim, settings, staff, stream
from .services.notification_hub import NotificationHub

log = structlog.get_logger()


def attach_services(
    app: FastAPI,
    store_group: StoreGroup,
    config: AssignmentConfig,
    notification_hub: NotificationHub | None = None,
) -> None:
    """装配服务实例到 app.state（lifespan 与测试共用）"""
    hub = notification_hub or NotificationHub()
    registry = StaffLimitRegistry(store_group, config)
    evaluator = WorkloadEvaluator(store_group, config)
    reclaim_service = ReclaimService(store_group, config, notifier=hub)

    app.state.store_group = store_group
    app.state.assignment_config = config
    app.state.notification_hub = hub
    app.state.registry = registry
    app.state.evaluator = evaluator
    app.state.guard = AssignmentGuard(store_group, registry, evaluator, config, notifier=hub)
    app.state.reclaim = reclaim_service
    app.state.scheduler = SweepScheduler(reclaim_service, registry, config)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB 和调度器，关闭时先排空扫描再关闭连接"""
    config = load_assignment_config()
    store_group = await create_store_group(get_db_path())
    attach_services(app, store_group, config)

    scheduler: SweepScheduler = app.state.scheduler
    if config.scheduler_enabled:
        scheduler.start()
    else:
        log.info("sweep_scheduler_disabled")

    log.info(
        "gateway_started",
        assignment_timeout_min=config.assignment_timeout_min,
        max_concurrent_items=config.max_concurrent_items,
        timezone=config.timezone,
    )

    yield

    # 关闭顺序：调度器排空 -> 写事务排空 -> 关闭连接
    await scheduler.stop()
    await store_group.close(drain_timeout=config.drain_timeout_s)
    log.info("gateway_stopped")


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="veoflow Gateway",
        version="0.1.0",
        description="分配 / 工作量 / 超时回收服务 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_exception_handler(VeoflowError, veoflow_error_handler)

    setup_logging()
    setup_logfire(app)

    app.include_router(items.router, tags=["items"])
    app.include_router(assignment.router, tags=["assignment"])
    app.include_router(reclaim.router, tags=["reclaim"])
    app.include_router(staff.router, tags=["staff"])
    app.include_router(settings.router, tags=["config"])
    app.include_router(stream.router, tags=["stream"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()

"""依赖注入模块 -- 通过 FastAPI Depends 注入 Store 与服务实例

实例通过 app.state 管理，在 lifespan 中初始化/清理。
"""

from fastapi import Request

from veoflow.core.config import AssignmentConfig
from veoflow.core.guard import AssignmentGuard
from veoflow.core.limits import StaffLimitRegistry
from veoflow.core.reclaim import ReclaimService
from veoflow.core.scheduler import SweepScheduler
from veoflow.core.store import StoreGroup
from veoflow.core.workload import WorkloadEvaluator

from .services.notification_hub import NotificationHub


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_notification_hub(request: Request) -> NotificationHub:
    return request.app.state.notification_hub


def get_assignment_config(request: Request) -> AssignmentConfig:
    return request.app.state.assignment_config


def get_registry(request: Request) -> StaffLimitRegistry:
    return request.app.state.registry


def get_evaluator(request: Request) -> WorkloadEvaluator:
    return request.app.state.evaluator


def get_guard(request: Request) -> AssignmentGuard:
    return request.app.state.guard


def get_reclaim_service(request: Request) -> ReclaimService:
    return request.app.state.reclaim


def get_scheduler(request: Request) -> SweepScheduler:
    return request.app.state.scheduler

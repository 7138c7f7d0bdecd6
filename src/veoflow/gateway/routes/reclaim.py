"""回收路由

GET  /api/reclaim/expired: 当前已超时的分配（数量 + 列表）
POST /api/reclaim/sweep:   立即触发一次扫描；已有扫描在执行时返回 409
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query

from ..deps import get_assignment_config, get_reclaim_service, get_scheduler
from ..errors import error_response

router = APIRouter()


@router.get("/api/reclaim/expired")
async def list_expired(
    limit: int = Query(default=100, ge=1, le=1000, description="列表最多返回条数"),
    reclaim=Depends(get_reclaim_service),
    config=Depends(get_assignment_config),
):
    # count 与 items 使用同一个 now，保证超时边界上两者一致
    now = datetime.now(UTC)
    count = await reclaim.count_expired(config.assignment_timeout, now)
    items = await reclaim.list_expired(config.assignment_timeout, now, limit=limit)
    return {
        "count": count,
        "timeout_min": config.assignment_timeout_min,
        "items": [item.model_dump(mode="json") for item in items],
    }


@router.post("/api/reclaim/sweep")
async def trigger_sweep(scheduler=Depends(get_scheduler)):
    report = await scheduler.run_once()
    if report is None:
        return error_response(
            409,
            "SWEEP_IN_PROGRESS",
            "a sweep pass is already running",
        )
    return report.model_dump(mode="json")

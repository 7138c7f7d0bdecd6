"""员工路由 -- 工作量与限制

GET    /api/staff/{staff_id}/workload: 工作量快照
GET    /api/staff/{staff_id}/quota:    当天配额使用情况
PUT    /api/staff/{staff_id}/limit:    设置限制（替换此前的限制）
DELETE /api/staff/{staff_id}/limit:    解除限制
GET    /api/staff/{staff_id}/limits:   限制历史（最新在前）
GET    /api/staff-limits:              当前生效的全部限制
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from pydantic import AwareDatetime, BaseModel, Field

from veoflow.core.models import StaffLimit

from ..deps import get_evaluator, get_registry
from ..errors import error_response

router = APIRouter()


class SetLimitRequest(BaseModel):
    """设置限制请求"""

    lock_until: AwareDatetime = Field(description="限制截止时间（不含），必须晚于当前时间")
    max_per_day: int | None = Field(
        default=None,
        ge=0,
        description="每日配额；为空表示窗口内完全禁止接单",
    )
    created_by: str = Field(default="admin", min_length=1)


def _limit_to_dict(limit: StaffLimit, now: datetime) -> dict:
    data = limit.model_dump(mode="json")
    data["currently_active"] = limit.is_currently_active(now)
    data["remaining_days"] = limit.remaining_days(now)
    return data


@router.get("/api/staff/{staff_id}/workload")
async def get_workload(
    staff_id: str,
    evaluator=Depends(get_evaluator),
):
    try:
        snapshot = await evaluator.snapshot(staff_id, datetime.now(UTC))
    except ValueError as e:
        return error_response(422, "INVALID_INPUT", str(e))
    return snapshot.model_dump(mode="json")


@router.get("/api/staff/{staff_id}/quota")
async def get_quota(
    staff_id: str,
    registry=Depends(get_registry),
):
    now = datetime.now(UTC)
    try:
        status = await registry.quota_status(staff_id, now)
    except ValueError as e:
        return error_response(422, "INVALID_INPUT", str(e))
    data = status.model_dump(mode="json", exclude={"limit"})
    data["limit"] = _limit_to_dict(status.limit, now) if status.limit else None
    return data


@router.put("/api/staff/{staff_id}/limit")
async def set_limit(
    staff_id: str,
    body: SetLimitRequest,
    registry=Depends(get_registry),
):
    now = datetime.now(UTC)
    try:
        limit = await registry.set_limit(
            staff_id,
            body.lock_until,
            body.max_per_day,
            created_by=body.created_by,
            now=now,
        )
    except ValueError as e:
        return error_response(422, "INVALID_INPUT", str(e))
    return {"limit": _limit_to_dict(limit, now)}


@router.delete("/api/staff/{staff_id}/limit")
async def remove_limit(
    staff_id: str,
    registry=Depends(get_registry),
):
    try:
        removed = await registry.remove_limit(staff_id)
    except ValueError as e:
        return error_response(422, "INVALID_INPUT", str(e))
    return {"staff_id": staff_id.strip(), "removed": removed}


@router.get("/api/staff/{staff_id}/limits")
async def limit_history(
    staff_id: str,
    registry=Depends(get_registry),
):
    now = datetime.now(UTC)
    try:
        limits = await registry.history(staff_id)
    except ValueError as e:
        return error_response(422, "INVALID_INPUT", str(e))
    return {
        "staff_id": staff_id.strip(),
        "limits": [_limit_to_dict(limit, now) for limit in limits],
    }


@router.get("/api/staff-limits")
async def active_limits(registry=Depends(get_registry)):
    now = datetime.now(UTC)
    limits = await registry.active_limits(now)
    return {"limits": [_limit_to_dict(limit, now) for limit in limits]}

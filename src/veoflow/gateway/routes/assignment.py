"""分配与生命周期路由

POST /api/items/{item_id}/assign:            分配给员工
POST /api/items/{item_id}/unassign:          管理员取消分配
POST /api/items/{item_id}/complete:          IN_PROGRESS -> DONE
POST /api/items/{item_id}/revision:          DONE -> IN_REVISION（返工）
POST /api/items/{item_id}/revision/complete: IN_REVISION -> DONE_REVISED
POST /api/items/{item_id}/cancel:            取消
POST /api/items/{item_id}/reclaim:           手动回收（force 跳过超时检查）

成功返回 200 + item；拒绝按 errors.REJECTION_STATUS 映射。
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from veoflow.core.limits import normalize_staff_id

from ..deps import get_guard, get_reclaim_service
from ..errors import error_response, result_response

router = APIRouter()


class AssignRequest(BaseModel):
    """分配请求"""

    staff_id: str = Field(min_length=1, description="接单员工")
    actor: str | None = Field(default=None, description="操作者，默认为员工本人")


class ActorRequest(BaseModel):
    """携带操作者的请求"""

    actor: str = Field(default="admin", min_length=1)


class ReclaimRequest(ActorRequest):
    force: bool = Field(default=False, description="忽略超时，回收任何进行中的分配")


@router.post("/api/items/{item_id}/assign")
async def assign_item(
    item_id: str,
    body: AssignRequest,
    guard=Depends(get_guard),
):
    try:
        staff_id = normalize_staff_id(body.staff_id)
    except ValueError as e:
        return error_response(422, "INVALID_INPUT", str(e))
    result = await guard.try_assign(item_id, staff_id, body.actor or staff_id)
    return result_response(result)


@router.post("/api/items/{item_id}/unassign")
async def unassign_item(
    item_id: str,
    body: ActorRequest | None = None,
    guard=Depends(get_guard),
):
    body = body or ActorRequest()
    return result_response(await guard.force_unassign(item_id, body.actor))


@router.post("/api/items/{item_id}/complete")
async def complete_item(
    item_id: str,
    body: ActorRequest | None = None,
    guard=Depends(get_guard),
):
    body = body or ActorRequest()
    return result_response(await guard.complete(item_id, body.actor))


@router.post("/api/items/{item_id}/revision")
async def flag_revision(
    item_id: str,
    body: ActorRequest | None = None,
    guard=Depends(get_guard),
):
    body = body or ActorRequest()
    return result_response(await guard.flag_revision(item_id, body.actor))


@router.post("/api/items/{item_id}/revision/complete")
async def complete_revision(
    item_id: str,
    body: ActorRequest | None = None,
    guard=Depends(get_guard),
):
    body = body or ActorRequest()
    return result_response(await guard.complete_revision(item_id, body.actor))


@router.post("/api/items/{item_id}/cancel")
async def cancel_item(
    item_id: str,
    body: ActorRequest | None = None,
    guard=Depends(get_guard),
):
    body = body or ActorRequest()
    return result_response(await guard.cancel(item_id, body.actor))


@router.post("/api/items/{item_id}/reclaim")
async def reclaim_item(
    item_id: str,
    body: ReclaimRequest | None = None,
    reclaim=Depends(get_reclaim_service),
):
    body = body or ReclaimRequest()
    return result_response(
        await reclaim.reclaim_item(item_id, body.actor, force=body.force)
    )

"""条目路由 -- 最小条目存储

POST   /api/items:                创建条目 (201)
GET    /api/items/{item_id}:       条目详情 (200 / 404)
DELETE /api/items/{item_id}:       软删除 (204 / 404)
GET    /api/items/{item_id}/audit: 审计轨迹 (200 / 404)
"""

from fastapi import APIRouter, Depends
from pydantic import AwareDatetime, BaseModel, Field
from starlette.responses import JSONResponse, Response

from ..deps import get_store_group
from ..errors import not_found_response
from ..services.item_service import ItemService

router = APIRouter()


class CreateItemRequest(BaseModel):
    """创建条目请求"""

    title: str = Field(default="", max_length=500)
    owner: str | None = Field(default=None, description="负责人，回收时接收通知")
    due_at: AwareDatetime | None = Field(default=None, description="交付截止时间")


@router.post("/api/items", status_code=201)
async def create_item(
    body: CreateItemRequest,
    store_group=Depends(get_store_group),
):
    service = ItemService(store_group)
    item = await service.create_item(title=body.title, owner=body.owner, due_at=body.due_at)
    return JSONResponse(status_code=201, content={"item": item.model_dump(mode="json")})


@router.get("/api/items/{item_id}")
async def get_item(
    item_id: str,
    store_group=Depends(get_store_group),
):
    item = await ItemService(store_group).get_item(item_id)
    if item is None:
        return not_found_response(item_id)
    return {"item": item.model_dump(mode="json")}


@router.delete("/api/items/{item_id}", status_code=204)
async def delete_item(
    item_id: str,
    store_group=Depends(get_store_group),
):
    deleted = await ItemService(store_group).delete_item(item_id)
    if not deleted:
        return not_found_response(item_id)
    return Response(status_code=204)


@router.get("/api/items/{item_id}/audit")
async def get_item_audit(
    item_id: str,
    store_group=Depends(get_store_group),
):
    """查询条目审计轨迹，按时间正序"""
    entries = await ItemService(store_group).audit_trail(item_id)
    if entries is None:
        return not_found_response(item_id)
    return {
        "item_id": item_id,
        "entries": [e.model_dump(mode="json") for e in entries],
    }

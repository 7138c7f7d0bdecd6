"""配置查询路由

GET /api/config: 当前生效的分配/回收配置
"""

from fastapi import APIRouter, Depends

from ..deps import get_assignment_config

router = APIRouter()


@router.get("/api/config")
async def get_config(config=Depends(get_assignment_config)):
    return config.model_dump(mode="json")

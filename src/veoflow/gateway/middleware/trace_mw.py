"""TraceMiddleware -- 条目级追踪

对 /api/items/{item_id}/... 路径绑定 trace_id=trace-{item_id}，
同一条目的分配、回收、返工日志可以串联检索。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ULID 长度
_ID_LENGTH = 26


def extract_item_id(path: str) -> str | None:
    """从 /api/items/{item_id} 路径提取 item_id"""
    parts = path.split("/")
    for i, part in enumerate(parts):
        if part == "items" and i + 1 < len(parts):
            candidate = parts[i + 1]
            if len(candidate) == _ID_LENGTH:
                return candidate
    return None


class TraceMiddleware(BaseHTTPMiddleware):
    """条目级追踪中间件 -- 为条目操作绑定 trace_id"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        item_id = extract_item_id(request.url.path)
        if item_id:
            structlog.contextvars.bind_contextvars(
                trace_id=f"trace-{item_id}",
                item_id=item_id,
            )

        return await call_next(request)

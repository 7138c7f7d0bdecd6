"""LoggingMiddleware -- 请求级日志

请求上下文绑定到 structlog contextvars：
- request_id：沿用调用方的 X-Request-ID（便于跨服务串联），缺失或非法时生成 ULID
- staff_id：/api/staff/{staff_id}/... 路径上的员工
条目路径的 item_id / trace_id 由 TraceMiddleware 绑定。

5xx（存储不可用、并发冲突）记 warning，其余记 info；/health 探针只记 debug。
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

REQUEST_ID_HEADER = "X-Request-ID"

# 调用方传入的 request_id 最大长度
_MAX_REQUEST_ID_LENGTH = 64

_QUIET_PATHS = frozenset({"/health", "/ready"})


def resolve_request_id(incoming: str | None) -> str:
    """调用方的 request_id 合法则沿用，否则生成新的 ULID"""
    if incoming:
        candidate = incoming.strip()
        if 0 < len(candidate) <= _MAX_REQUEST_ID_LENGTH and candidate.isprintable():
            return candidate
    return str(ULID())


def extract_staff_id(path: str) -> str | None:
    """从 /api/staff/{staff_id}/... 路径提取员工标识"""
    parts = path.split("/")
    for i, part in enumerate(parts):
        if part == "staff" and i + 1 < len(parts):
            candidate = parts[i + 1].strip()
            return candidate or None
    return None


class LoggingMiddleware(BaseHTTPMiddleware):
    """请求级日志中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        path = request.url.path

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=path,
        )
        staff_id = extract_staff_id(path)
        if staff_id:
            structlog.contextvars.bind_contextvars(staff_id=staff_id)

        log = structlog.get_logger()
        quiet = path in _QUIET_PATHS
        started = time.perf_counter()

        response = await call_next(request)

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        if response.status_code >= 500:
            await log.awarning(
                "request_failed",
                status_code=response.status_code,
                duration_ms=duration_ms,
            )
        elif quiet:
            await log.adebug(
                "request_completed",
                status_code=response.status_code,
                duration_ms=duration_ms,
            )
        else:
            await log.ainfo(
                "request_completed",
                status_code=response.status_code,
                duration_ms=duration_ms,
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response

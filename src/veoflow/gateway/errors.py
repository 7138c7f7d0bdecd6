"""错误响应 -- 统一的 {"error": {"code", "message", "details"}} 结构

Rejected 结果到 HTTP 状态码的映射：
NOT_FOUND -> 404，CONCURRENCY_CONFLICT -> 503 + Retry-After，其余 -> 409。
"""

from types import MappingProxyType
from typing import Any

import structlog
from fastapi import Request
from starlette.responses import JSONResponse

from veoflow.core.exceptions import (
    ConcurrencyConflictError,
    StoreUnavailableError,
    VeoflowError,
)
from veoflow.core.models import Accepted, GuardResult, Rejected, RejectionReason

log = structlog.get_logger()

# 客户端重试间隔（秒）
RETRY_AFTER_SECONDS = 1

REJECTION_STATUS: MappingProxyType[RejectionReason, int] = MappingProxyType(
    {
        RejectionReason.NOT_FOUND: 404,
        RejectionReason.INVALID_STATE: 409,
        RejectionReason.STAFF_LIMITED: 409,
        RejectionReason.QUOTA_EXCEEDED: 409,
        RejectionReason.CAPACITY_EXCEEDED: 409,
        RejectionReason.CONCURRENCY_CONFLICT: 503,
    }
)


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "details": details or {},
            }
        },
        headers=headers,
    )


def rejection_response(rejected: Rejected) -> JSONResponse:
    status_code = REJECTION_STATUS[rejected.reason]
    headers = None
    if status_code == 503:
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)}
    return error_response(
        status_code,
        rejected.reason.value,
        rejected.message,
        rejected.details,
        headers,
    )


def result_response(result: GuardResult) -> JSONResponse:
    """Accepted -> 200 + item；Rejected -> 映射后的错误响应"""
    if isinstance(result, Accepted):
        return JSONResponse(
            status_code=200,
            content={"item": result.item.model_dump(mode="json")},
        )
    return rejection_response(result)


def not_found_response(item_id: str) -> JSONResponse:
    return error_response(
        404,
        RejectionReason.NOT_FOUND.value,
        f"item {item_id} not found",
        {"item_id": item_id},
    )


async def veoflow_error_handler(request: Request, exc: VeoflowError) -> JSONResponse:
    """基础设施故障 -> 503，可重试"""
    if isinstance(exc, ConcurrencyConflictError):
        code = RejectionReason.CONCURRENCY_CONFLICT.value
    elif isinstance(exc, StoreUnavailableError):
        code = "STORE_UNAVAILABLE"
    else:
        code = "INTERNAL_ERROR"
    log.error("request_failed", error_type=type(exc).__name__, error=str(exc))
    return error_response(
        503,
        code,
        str(exc),
        headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
    )

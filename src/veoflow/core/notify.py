"""提交后通知投递

通知是 fire and forget：在事务提交之后调用，
投递失败只记录告警，不影响已提交的状态。
"""

from typing import Any

import structlog

from .models.enums import NotificationKind
from .store.protocols import Notifier

log = structlog.get_logger()


async def notify_safely(
    notifier: Notifier | None,
    recipient: str | None,
    kind: NotificationKind,
    payload: dict[str, Any],
) -> bool:
    """投递一条通知，返回是否成功（无 notifier 或无接收者时返回 False）"""
    if notifier is None or not recipient:
        return False
    try:
        await notifier.notify(recipient, kind, payload)
    except Exception as e:
        log.warning(
            "notification_failed",
            recipient=recipient,
            kind=kind.value,
            item_id=payload.get("item_id"),
            error_type=type(e).__name__,
            error=str(e),
        )
        return False
    return True

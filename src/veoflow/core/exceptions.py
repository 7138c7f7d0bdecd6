"""veoflow 异常体系

业务上的"预期拒绝"（员工受限、超出并发上限等）以 Rejected 结果值返回，
不走异常；这里只定义基础设施层面的故障。
"""


class VeoflowError(Exception):
    """veoflow 基础异常"""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class StoreUnavailableError(VeoflowError):
    """存储不可用（磁盘 I/O、连接已关闭等瞬时故障）"""

    def __init__(self, operation: str, original_error: Exception) -> None:
        super().__init__(
            f"存储不可用: {operation} -- {original_error}",
            recoverable=True,
        )
        self.operation = operation
        self.original_error = original_error


class ConcurrencyConflictError(VeoflowError):
    """并发冲突：写入时发现记录已被其他写者修改，或未能拿到写锁

    可以安全重试，但必须重新评估前置条件。
    """

    def __init__(self, item_id: str | None = None, message: str = "并发冲突") -> None:
        super().__init__(message, recoverable=True)
        self.item_id = item_id

"""structlog 配置模块

dev 模式：pretty print 可读输出
json 模式：结构化 JSON 输出
Logfire APM：LOGFIRE_SEND_TO_LOGFIRE 环境变量控制，false 时降级为纯本地日志。
"""

import logging
import os

import structlog
from fastapi import FastAPI


def setup_logging() -> None:
    """初始化 structlog 配置

    环境变量:
        VEOFLOW_LOG_FORMAT: "json" 结构化输出（生产）/ "dev"（默认）可读输出
        VEOFLOW_LOG_LEVEL: 日志级别，默认 INFO
    """
    log_format = os.environ.get("VEOFLOW_LOG_FORMAT", "dev")
    log_level = os.environ.get("VEOFLOW_LOG_LEVEL", "INFO")

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # 标准库 logging（uvicorn / aiosqlite）走同一套渲染
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def setup_logfire(app: FastAPI) -> bool:
    """Logfire 可选初始化

    LOGFIRE_SEND_TO_LOGFIRE="true" 时启用（需要安装 observability extra 和 LOGFIRE_TOKEN），
    初始化失败记录告警后降级为纯本地日志。

    Returns:
        True 如果 Logfire 已启用
    """
    send_to_logfire = os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").lower()
    if send_to_logfire != "true":
        return False
    try:
        import logfire

        logfire.configure()
        logfire.instrument_fastapi(app)
    except Exception as e:
        structlog.get_logger().warning(
            "logfire_init_failed",
            error=str(e),
            message="Logfire 初始化失败，降级为纯本地日志",
        )
        return False
    return True

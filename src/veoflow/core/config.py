"""配置模块 -- 可通过环境变量覆盖

包含数据库路径，以及分配/回收子系统的全部可调参数
（超时、扫描间隔、并发上限、排空超时等）。
"""

import os
from datetime import timedelta
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from pydantic import BaseModel, Field, field_validator, model_validator

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("VEOFLOW_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "VEOFLOW_DB_PATH",
        str(_get_base_dir() / "sqlite" / "veoflow.db"),
    )


# SSE 心跳间隔（秒）
SSE_HEARTBEAT_INTERVAL: int = int(
    os.environ.get("VEOFLOW_SSE_HEARTBEAT_INTERVAL", "15")
)


class AssignmentConfig(BaseModel):
    """分配/回收子系统配置 -- 从环境变量加载

    环境变量:
        VEOFLOW_ASSIGNMENT_TIMEOUT_MIN: 分配超时（分钟，默认 15）
        VEOFLOW_SWEEP_INTERVAL_S: 扫描间隔（秒，默认 60）
        VEOFLOW_SWEEP_MAX_DURATION_S: 单次扫描时长上限（秒，默认 30）
        VEOFLOW_SWEEP_BATCH_LIMIT: 单次扫描最多处理条数（默认 500）
        VEOFLOW_MAX_CONCURRENT_ITEMS: 每位员工并发上限（默认 3）
        VEOFLOW_DRAIN_TIMEOUT_S: 优雅关闭排空超时（秒，默认 30）
        VEOFLOW_URGENT_DEADLINE_HOURS: 截止时间紧急窗口（小时，0 表示关闭）
        VEOFLOW_TIMEZONE: 计算"当天"配额所用时区（默认 UTC）
        VEOFLOW_SCHEDULER_ENABLED: 是否启动后台扫描（默认 true）
    """

    assignment_timeout_min: int = Field(default=15, ge=1, description="分配超时（分钟）")
    sweep_interval_s: int = Field(default=60, ge=1, description="扫描间隔（秒）")
    sweep_max_duration_s: int = Field(default=30, ge=1, description="单次扫描时长上限（秒）")
    sweep_batch_limit: int = Field(default=500, ge=1, description="单次扫描最多处理条数")
    max_concurrent_items: int = Field(default=3, ge=1, description="每位员工并发上限")
    drain_timeout_s: int = Field(default=30, ge=0, description="优雅关闭排空超时（秒）")
    urgent_deadline_hours: int = Field(
        default=0,
        ge=0,
        description="截止时间在此窗口内的未完成项视为紧急，0 表示关闭",
    )
    timezone: str = Field(default="UTC", description="配额日历日时区（IANA 名称）")
    scheduler_enabled: bool = Field(default=True, description="是否启动后台扫描")

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {value}") from e
        return value

    @model_validator(mode="after")
    def _check_sweep_bound(self) -> "AssignmentConfig":
        # 单次扫描必须在下一次触发前结束，避免重叠
        if self.sweep_max_duration_s >= self.sweep_interval_s:
            raise ValueError("sweep_max_duration_s must be less than sweep_interval_s")
        return self

    @property
    def assignment_timeout(self) -> timedelta:
        return timedelta(minutes=self.assignment_timeout_min)

    @property
    def urgent_window(self) -> timedelta | None:
        if self.urgent_deadline_hours == 0:
            return None
        return timedelta(hours=self.urgent_deadline_hours)

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


# 环境变量 -> 字段名，按类型分组
_INT_ENV_VARS: dict[str, str] = {
    "VEOFLOW_ASSIGNMENT_TIMEOUT_MIN": "assignment_timeout_min",
    "VEOFLOW_SWEEP_INTERVAL_S": "sweep_interval_s",
    "VEOFLOW_SWEEP_MAX_DURATION_S": "sweep_max_duration_s",
    "VEOFLOW_SWEEP_BATCH_LIMIT": "sweep_batch_limit",
    "VEOFLOW_MAX_CONCURRENT_ITEMS": "max_concurrent_items",
    "VEOFLOW_DRAIN_TIMEOUT_S": "drain_timeout_s",
    "VEOFLOW_URGENT_DEADLINE_HOURS": "urgent_deadline_hours",
}


def load_assignment_config() -> AssignmentConfig:
    """从环境变量加载分配配置

    非法的整数值记录告警并回退到默认值，不阻塞启动。

    Returns:
        AssignmentConfig 实例
    """
    kwargs: dict = {}

    for env_var, field_name in _INT_ENV_VARS.items():
        if val := os.environ.get(env_var):
            try:
                kwargs[field_name] = int(val)
            except ValueError:
                log.warning(
                    "invalid_int_config",
                    env_var=env_var,
                    value=val,
                    fallback=AssignmentConfig.model_fields[field_name].default,
                )

    if val := os.environ.get("VEOFLOW_TIMEZONE"):
        kwargs["timezone"] = val

    if val := os.environ.get("VEOFLOW_SCHEDULER_ENABLED"):
        kwargs["scheduler_enabled"] = val.lower() not in ("0", "false", "no", "off")

    return AssignmentConfig(**kwargs)

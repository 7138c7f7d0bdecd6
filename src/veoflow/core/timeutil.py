"""时间工具 -- 数据库时间戳编解码 + 日历日边界

所有时间戳以 UTC、微秒精度的 ISO-8601 字符串存储，
保证字符串字典序与时间先后一致，可直接在 SQL 中比较。
"""

from datetime import UTC, datetime, time, timedelta, tzinfo


def to_db_ts(dt: datetime) -> str:
    """datetime -> 数据库时间戳字符串（naive 视为 UTC）"""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


def from_db_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def day_bounds(now: datetime, tz: tzinfo) -> tuple[datetime, datetime]:
    """now 所在日历日的 [零点, 次日零点)，返回 UTC 时间"""
    local_day = now.astimezone(tz).date()
    start = datetime.combine(local_day, time.min, tzinfo=tz)
    end = datetime.combine(local_day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(UTC), end.astimezone(UTC)

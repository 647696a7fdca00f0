"""时间、ID 与文件命名工具."""

import posixpath
import uuid
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

EPOCH = datetime(1970, 1, 1)


def utcnow() -> datetime:
    """当前 UTC 时间（naive，与数据库存储一致）."""
    return datetime.now(UTC).replace(tzinfo=None)


def local_now(tz_name: str) -> datetime:
    """指定时区的当前时间."""
    return datetime.now(ZoneInfo(tz_name))


def parse_rfc3339(value: str | None) -> datetime | None:
    """解析 Drive API 时间戳为 naive UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed


def to_rfc3339(value: datetime) -> str:
    """格式化为 Drive 查询使用的时间戳（秒级截断）."""
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def generate_id() -> str:
    """生成唯一 ID."""
    return str(uuid.uuid4())


def generate_run_id(tz_name: str = "Asia/Ho_Chi_Minh", now: datetime | None = None) -> str:
    """生成批次 ID，格式 yyMMdd-HHmmss."""
    current = now or local_now(tz_name)
    return current.strftime("%y%m%d-%H%M%S")


def format_timestamp_for_filename(value: datetime) -> str:
    """文件版本时间戳，格式 yyMMdd_HHmm（如 260214_1358）."""
    return value.strftime("%y%m%d_%H%M")


def versioned_file_name(file_name: str, when: datetime) -> str:
    """生成冲突重命名后的文件名: 原名_vyyMMdd_HHmm.扩展名."""
    stamp = format_timestamp_for_filename(when)
    base, ext = posixpath.splitext(file_name)
    return f"{base}_v{stamp}{ext}"

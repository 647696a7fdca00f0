"""ProjectHeartbeat 心跳模型."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from drivesync.utils.timeutil import utcnow


class ProjectHeartbeat(SQLModel, table=True):
    """项目最近一次同步的心跳（用于健康检查）."""

    __tablename__ = "heartbeats"  # type: ignore[assignment]

    project_id: str = Field(primary_key=True)
    last_check_timestamp: datetime = Field(default_factory=utcnow)
    last_status: str

"""SyncSession 同步会话与 FileLog 文件日志模型."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from drivesync.models.status import FileStatus, SessionStatus, Trigger
from drivesync.utils.timeutil import generate_id, utcnow


class SyncSession(SQLModel, table=True):
    """单个项目的一次同步执行."""

    __tablename__ = "sync_sessions"  # type: ignore[assignment]

    id: str = Field(default_factory=generate_id, primary_key=True)
    project_id: str = Field(index=True, description="关联项目")
    project_name: str = Field(default="")
    run_id: str = Field(index=True, description="同一批次共享的运行 ID")
    timestamp: datetime = Field(default_factory=utcnow, description="会话开始时间")
    execution_duration_seconds: int = Field(default=0)
    status: str = Field(
        default=SessionStatus.RUNNING,
        description="状态: running|success|interrupted|error|warning",
    )
    current: str | None = Field(
        default=None, description="跟随 status，用于标记旧会话是否已被续传解决"
    )
    files_count: int = Field(default=0)
    failed_files_count: int = Field(default=0)
    total_size_synced: int = Field(default=0)
    error_message: str | None = Field(default=None)
    triggered_by: str = Field(default=Trigger.MANUAL, description="manual|scheduled")
    continue_id: str | None = Field(default=None, description="续传此会话的 run_id")


class FileLog(SQLModel, table=True):
    """会话中访问过的单个文件."""

    __tablename__ = "file_logs"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    session_id: str = Field(index=True, description="关联会话")
    file_name: str
    source_link: str = Field(default="")
    dest_link: str = Field(default="")
    source_path: str = Field(description="带文件夹前缀的源路径")
    source_file_id: str | None = Field(default=None, index=True)
    created_date: datetime | None = Field(default=None)
    modified_date: datetime | None = Field(default=None)
    file_size: int = Field(default=0)
    status: str = Field(default=FileStatus.SUCCESS, description="success|error|skipped")
    error_message: str = Field(default="")

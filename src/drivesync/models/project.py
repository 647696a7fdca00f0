"""Project 同步项目模型."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from drivesync.models.status import ProjectStatus
from drivesync.utils.timeutil import generate_id, utcnow


class Project(SQLModel, table=True):
    """同步项目（源文件夹 -> 目标文件夹）."""

    __tablename__ = "projects"  # type: ignore[assignment]

    id: str = Field(default_factory=generate_id, primary_key=True)
    name: str = Field(description="项目名称")
    description: str = Field(default="", description="描述")
    source_folder_id: str = Field(description="源文件夹 ID")
    dest_folder_id: str = Field(description="目标文件夹 ID")
    status: str = Field(
        default=ProjectStatus.ACTIVE, description="项目状态: active|paused|error"
    )
    last_sync_status: str | None = Field(
        default=None,
        description="最近同步状态: success|interrupted|error|pending|running",
    )
    last_sync_timestamp: datetime | None = Field(default=None)
    last_success_sync_timestamp: datetime | None = Field(default=None)
    next_sync_timestamp: datetime | None = Field(
        default=None, description="下次增量扫描的检查点"
    )
    sync_start_date: datetime | None = Field(
        default=None, description="早于此时间的文件永不同步"
    )
    files_count: int = Field(default=0, description="累计同步文件数")
    total_size: int = Field(default=0, description="累计同步字节数")
    is_deleted: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

"""数据模型."""

from drivesync.models.app_settings import AppSettings
from drivesync.models.database import async_session_maker, init_db
from drivesync.models.heartbeat import ProjectHeartbeat
from drivesync.models.project import Project
from drivesync.models.status import (
    FileStatus,
    LastSyncStatus,
    ProjectStatus,
    SessionStatus,
    Trigger,
)
from drivesync.models.sync import FileLog, SyncSession

__all__ = [
    "AppSettings",
    "FileLog",
    "FileStatus",
    "LastSyncStatus",
    "Project",
    "ProjectHeartbeat",
    "ProjectStatus",
    "SessionStatus",
    "SyncSession",
    "Trigger",
    "async_session_maker",
    "init_db",
]

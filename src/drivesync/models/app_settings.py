"""应用动态配置模型."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from drivesync.config import SettingValue
from drivesync.utils.timeutil import utcnow


class AppSettings(SQLModel, table=True):
    """应用动态配置表（单行存储）."""

    __tablename__ = "app_settings"

    id: int = Field(default=1, primary_key=True)

    # 同步配置
    sync_cutoff_seconds: int | None = Field(default=None)
    sync_concurrency: int | None = Field(default=None)
    log_batch_size: int | None = Field(default=None)
    stale_lock_hours: float | None = Field(default=None)

    # 调度与通知
    enable_auto_schedule: bool | None = Field(default=None)
    default_schedule_cron: str | None = Field(default=None)
    enable_notifications: bool | None = Field(default=None)
    webhook_url: str | None = Field(default=None)

    updated_at: datetime = Field(default_factory=utcnow)

    def to_settings_dict(self) -> dict[str, SettingValue]:
        """转换为动态配置缓存格式."""
        return {
            "sync_cutoff_seconds": self.sync_cutoff_seconds,
            "sync_concurrency": self.sync_concurrency,
            "log_batch_size": self.log_batch_size,
            "stale_lock_hours": self.stale_lock_hours,
            "enable_auto_schedule": self.enable_auto_schedule,
            "default_schedule_cron": self.default_schedule_cron,
            "enable_notifications": self.enable_notifications,
            "webhook_url": self.webhook_url,
        }

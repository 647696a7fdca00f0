"""应用配置管理."""

from dataclasses import dataclass
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYNC_CUTOFF_SECONDS = 300

SettingValue = str | int | float | bool | None


class Settings(BaseSettings):
    """应用配置（环境变量）."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Google Drive OAuth2 配置
    google_client_id: str = ""
    google_client_secret: str = ""
    google_refresh_token: str = ""

    # 应用配置
    database_url: str = "sqlite+aiosqlite:///./drivesync.db"
    timezone: str = "Asia/Ho_Chi_Minh"

    # 同步配置
    sync_cutoff_seconds: int = DEFAULT_SYNC_CUTOFF_SECONDS
    max_retries: int = 3
    store_batch_size: int = 450
    log_batch_size: int = 50
    sync_concurrency: int = 5
    stale_lock_hours: float = 2.0

    # 调度与通知
    enable_auto_schedule: bool = True
    default_schedule_cron: str = "0 */6 * * *"
    enable_notifications: bool = True
    webhook_url: str = ""


# 动态配置缓存
_dynamic_settings: dict[str, SettingValue] | None = None


def set_dynamic_settings(settings_dict: dict[str, SettingValue]) -> None:
    """设置动态配置缓存."""
    global _dynamic_settings
    _dynamic_settings = settings_dict


def clear_dynamic_settings() -> None:
    """清除动态配置缓存."""
    global _dynamic_settings
    _dynamic_settings = None


@lru_cache
def get_settings() -> Settings:
    """获取应用配置（带缓存）."""
    return Settings()


def get_effective_setting(key: str) -> SettingValue:
    """获取有效配置值（动态配置优先）."""
    if _dynamic_settings and key in _dynamic_settings:
        value = _dynamic_settings.get(key)
        if value is not None:
            return value

    # fallback 到环境变量配置
    settings = get_settings()
    return getattr(settings, key, None)


@dataclass(frozen=True)
class SyncSettings:
    """单次运行使用的同步配置快照."""

    sync_cutoff_seconds: int = DEFAULT_SYNC_CUTOFF_SECONDS
    enable_auto_schedule: bool = True
    enable_notifications: bool = True
    webhook_url: str = ""
    sync_concurrency: int = 5
    log_batch_size: int = 50
    stale_lock_hours: float = 2.0
    timezone: str = "Asia/Ho_Chi_Minh"

    @property
    def effective_cutoff_seconds(self) -> int:
        """截止时间（<= 0 时回退到默认值）."""
        if self.sync_cutoff_seconds > 0:
            return self.sync_cutoff_seconds
        return DEFAULT_SYNC_CUTOFF_SECONDS


def resolve_sync_settings() -> SyncSettings:
    """合并环境变量与动态配置，生成同步配置快照."""
    return SyncSettings(
        sync_cutoff_seconds=int(get_effective_setting("sync_cutoff_seconds") or 0),
        enable_auto_schedule=bool(get_effective_setting("enable_auto_schedule")),
        enable_notifications=bool(get_effective_setting("enable_notifications")),
        webhook_url=str(get_effective_setting("webhook_url") or ""),
        sync_concurrency=max(1, int(get_effective_setting("sync_concurrency") or 5)),
        log_batch_size=max(1, int(get_effective_setting("log_batch_size") or 50)),
        stale_lock_hours=float(get_effective_setting("stale_lock_hours") or 2.0),
        timezone=str(get_effective_setting("timezone") or "Asia/Ho_Chi_Minh"),
    )

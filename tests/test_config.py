"""测试配置合并."""

from collections.abc import Generator

import pytest

from drivesync.config import (
    DEFAULT_SYNC_CUTOFF_SECONDS,
    SyncSettings,
    clear_dynamic_settings,
    get_effective_setting,
    resolve_sync_settings,
    set_dynamic_settings,
)
from drivesync.models.app_settings import AppSettings


@pytest.fixture(autouse=True)
def reset_dynamic() -> Generator[None, None, None]:
    clear_dynamic_settings()
    yield
    clear_dynamic_settings()


class TestEffectiveSettings:
    """测试动态配置优先级."""

    def test_dynamic_overrides_environment(self) -> None:
        set_dynamic_settings({"sync_concurrency": 9})
        assert get_effective_setting("sync_concurrency") == 9

    def test_none_falls_back(self) -> None:
        """动态配置中为 None 的键回退到环境变量配置."""
        set_dynamic_settings(AppSettings(sync_cutoff_seconds=120).to_settings_dict())
        assert get_effective_setting("sync_cutoff_seconds") == 120
        assert get_effective_setting("log_batch_size") == 50

    def test_false_is_kept(self) -> None:
        set_dynamic_settings({"enable_auto_schedule": False})
        assert resolve_sync_settings().enable_auto_schedule is False

    def test_snapshot(self) -> None:
        set_dynamic_settings({"stale_lock_hours": 0.5, "webhook_url": "https://hook"})
        settings = resolve_sync_settings()
        assert settings.stale_lock_hours == 0.5
        assert settings.webhook_url == "https://hook"


class TestCutoff:
    def test_non_positive_uses_default(self) -> None:
        assert SyncSettings(sync_cutoff_seconds=0).effective_cutoff_seconds == DEFAULT_SYNC_CUTOFF_SECONDS
        assert SyncSettings(sync_cutoff_seconds=-5).effective_cutoff_seconds == DEFAULT_SYNC_CUTOFF_SECONDS

    def test_positive_kept(self) -> None:
        assert SyncSettings(sync_cutoff_seconds=42).effective_cutoff_seconds == 42

"""测试定时任务."""

from unittest.mock import AsyncMock, MagicMock

from apscheduler.triggers.cron import CronTrigger

from drivesync.core.sync_scheduler import SyncAllResult
from drivesync.models.status import Trigger
from drivesync.scheduler.tasks import create_scheduler, scheduled_sync_task, shutdown_scheduler


class TestScheduledTask:
    """测试定时同步任务."""

    async def test_runs_sync_all_as_scheduled(self) -> None:
        sync_scheduler = MagicMock()
        sync_scheduler.sync_all = AsyncMock(
            return_value=SyncAllResult(success=True, run_id="run", sessions_count=2)
        )

        await scheduled_sync_task(sync_scheduler)

        sync_scheduler.sync_all.assert_awaited_once_with(Trigger.SCHEDULED)

    async def test_failure_is_logged(self, caplog) -> None:
        sync_scheduler = MagicMock()
        sync_scheduler.sync_all = AsyncMock(side_effect=RuntimeError("db gone"))

        await scheduled_sync_task(sync_scheduler)

        assert "定时同步任务失败" in caplog.text

    async def test_create_scheduler_registers_cron_job(self) -> None:
        scheduler = create_scheduler(MagicMock(), cron="*/15 * * * *")
        try:
            job = scheduler.get_job("sync_all_task")
            assert job is not None
            assert isinstance(job.trigger, CronTrigger)
        finally:
            await shutdown_scheduler()

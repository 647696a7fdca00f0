"""定时任务定义."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from drivesync.config import get_effective_setting
from drivesync.core.sync_scheduler import SyncScheduler
from drivesync.models.status import Trigger

logger = logging.getLogger(__name__)

_scheduler: AsyncIOScheduler | None = None


async def scheduled_sync_task(sync_scheduler: SyncScheduler) -> None:
    """定时同步任务：同步所有项目（受自动同步开关控制）."""
    logger.info("开始定时同步任务...")
    try:
        result = await sync_scheduler.sync_all(Trigger.SCHEDULED)
    except Exception as e:
        logger.exception(f"定时同步任务失败: {e}")
        return

    if not result.success:
        logger.info(f"定时同步已跳过: {result.message}")
        return
    logger.info(f"定时同步完成: run_id={result.run_id}, 会话数={result.sessions_count}")


def create_scheduler(
    sync_scheduler: SyncScheduler, cron: str | None = None
) -> AsyncIOScheduler:
    """创建并启动定时任务调度器."""
    global _scheduler

    expression = cron or str(get_effective_setting("default_schedule_cron"))
    timezone = str(get_effective_setting("timezone"))

    _scheduler = AsyncIOScheduler(timezone=timezone)
    _scheduler.add_job(
        scheduled_sync_task,
        CronTrigger.from_crontab(expression, timezone=timezone),
        args=[sync_scheduler],
        id="sync_all_task",
        name="Drive 项目定时同步",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    _scheduler.start()
    logger.info(f"定时任务调度器已启动，cron: {expression} ({timezone})")

    return _scheduler


async def shutdown_scheduler() -> None:
    """关闭定时任务调度器."""
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        logger.info("定时任务调度器已关闭")
        _scheduler = None

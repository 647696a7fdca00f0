"""定时任务模块."""

from drivesync.scheduler.tasks import create_scheduler, shutdown_scheduler

__all__ = ["create_scheduler", "shutdown_scheduler"]

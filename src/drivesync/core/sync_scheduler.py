"""多项目同步调度 - 优先级排序 + 有界并发 + 故障隔离."""

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from drivesync.config import SyncSettings, resolve_sync_settings, set_dynamic_settings
from drivesync.core.cancellation import CancellationRegistry
from drivesync.core.engine import ProjectSyncEngine
from drivesync.core.notifier import WebhookNotifier
from drivesync.core.repository import ProjectNotFoundError, SyncRepository
from drivesync.models.project import Project
from drivesync.models.status import (
    FAILED_SYNC_STATUSES,
    LastSyncStatus,
    ProjectStatus,
    SessionStatus,
    Trigger,
)
from drivesync.models.sync import SyncSession
from drivesync.utils.timeutil import generate_run_id

logger = logging.getLogger(__name__)

AUTO_SCHEDULE_DISABLED_MESSAGE = "Auto schedule disabled"


@dataclass
class SyncAllResult:
    """一次批量运行的汇总."""

    success: bool
    run_id: str
    sessions_count: int = 0
    message: str = ""
    sessions: list[SyncSession] = field(default_factory=list)


@dataclass
class SyncOneResult:
    """单项目运行结果."""

    run_id: str
    message: str
    session: SyncSession


def sort_projects(projects: list[Project]) -> list[Project]:
    """失败/中断的项目优先（最近尝试的在前），健康项目按最久未同步在前."""
    failed = [p for p in projects if p.last_sync_status in FAILED_SYNC_STATUSES]
    healthy = [p for p in projects if p.last_sync_status not in FAILED_SYNC_STATUSES]

    failed.sort(key=lambda p: p.last_sync_timestamp or datetime.min, reverse=True)
    healthy.sort(key=lambda p: p.last_sync_timestamp or datetime.min)
    return failed + healthy


def is_eligible(project: Project) -> bool:
    return project.status == ProjectStatus.ACTIVE and not project.is_deleted


class SyncScheduler:
    """把项目分发给同步引擎，并汇总结果."""

    def __init__(
        self,
        engine: ProjectSyncEngine,
        repository: SyncRepository,
        cancellation: CancellationRegistry,
        notifier: WebhookNotifier | None = None,
    ) -> None:
        self.engine = engine
        self.repository = repository
        self.cancellation = cancellation
        self.notifier = notifier
        self._background: set[asyncio.Task[Any]] = set()

    async def sync_all(self, trigger: str = Trigger.SCHEDULED) -> SyncAllResult:
        """同步所有可用项目."""
        settings = await self.refresh_settings()
        run_id = generate_run_id(settings.timezone)

        if trigger != Trigger.MANUAL and not settings.enable_auto_schedule:
            logger.info("自动同步已关闭，跳过本次运行")
            return SyncAllResult(
                success=False, run_id=run_id, message=AUTO_SCHEDULE_DISABLED_MESSAGE
            )

        projects = sort_projects(
            [p for p in await self.repository.list_projects() if is_eligible(p)]
        )
        logger.info(
            f"开始批量同步: run_id={run_id}, 项目数={len(projects)}, "
            f"并发={settings.sync_concurrency}, triggered_by={trigger}"
        )

        # 使用信号量控制并发
        semaphore = asyncio.Semaphore(max(1, settings.sync_concurrency))

        async def sync_with_semaphore(project: Project) -> SyncSession:
            async with semaphore:
                return await self._run_project(project, run_id, settings, trigger)

        sessions = list(await asyncio.gather(*(sync_with_semaphore(p) for p in projects)))

        await self._notify(settings, sessions, run_id)

        logger.info(f"批量同步完成: run_id={run_id}, 会话数={len(sessions)}")
        return SyncAllResult(
            success=True,
            run_id=run_id,
            sessions_count=len(sessions),
            message=f"Synced {len(sessions)} projects",
            sessions=sessions,
        )

    async def sync_one(self, project_id: str, trigger: str = Trigger.MANUAL) -> SyncOneResult:
        """同步单个项目."""
        project = await self.repository.get_project(project_id)
        if project is None or project.is_deleted:
            msg = f"Project not found: {project_id}"
            raise ProjectNotFoundError(msg)

        settings = await self.refresh_settings()
        run_id = generate_run_id(settings.timezone)
        session = await self._run_project(project, run_id, settings, trigger)

        await self._notify(settings, [session], run_id)

        return SyncOneResult(
            run_id=run_id,
            message=f"Synced {session.files_count} files",
            session=session,
        )

    async def refresh_settings(self) -> SyncSettings:
        """重新加载数据库中的动态配置，生成本次运行的配置快照."""
        try:
            app_settings = await self.repository.load_app_settings()
        except Exception as e:
            logger.warning(f"动态配置加载失败，沿用当前配置: {e}")
        else:
            if app_settings is not None:
                set_dynamic_settings(app_settings.to_settings_dict())
        return resolve_sync_settings()

    def request_stop(self, project_id: str) -> None:
        """请求停止项目同步（在下一个检查点生效）."""
        self.cancellation.request_stop(project_id)

    async def _run_project(
        self, project: Project, run_id: str, settings: SyncSettings, trigger: str
    ) -> SyncSession:
        """运行单个项目；逃逸的异常转换为错误会话，不影响其他项目."""
        try:
            return await self.engine.sync_project(project, run_id, settings, trigger)
        except Exception as e:
            logger.exception(f"项目同步异常 {project.name}: {e}")
            return await self._record_failure(project, run_id, trigger, str(e))

    async def _record_failure(
        self, project: Project, run_id: str, trigger: str, message: str
    ) -> SyncSession:
        session = SyncSession(
            project_id=project.id,
            project_name=project.name,
            run_id=run_id,
            status=SessionStatus.ERROR,
            current=SessionStatus.ERROR,
            error_message=message,
            triggered_by=trigger,
        )
        try:
            await self.repository.create_or_replace_session(session)
            await self.repository.update_project(
                project.id,
                status=ProjectStatus.ERROR,
                last_sync_status=LastSyncStatus.ERROR,
            )
        except Exception as e:
            logger.error(f"错误会话保存失败 {project.id}: {e}")
        return session

    async def _notify(
        self, settings: SyncSettings, sessions: list[SyncSession], run_id: str
    ) -> None:
        """发送汇总通知，失败不影响同步结果."""
        if not (settings.enable_notifications and settings.webhook_url and self.notifier):
            return
        try:
            await self.notifier.send_sync_summary(settings.webhook_url, sessions, run_id)
        except Exception as e:
            logger.warning(f"同步汇总通知失败: {e}")

    # ---------- 后台运行 ----------

    def launch_all(self, trigger: str = Trigger.MANUAL) -> asyncio.Task[SyncAllResult]:
        """在后台启动批量同步，不等待结果."""
        return self._spawn(self.sync_all(trigger), "sync_all")

    def launch_one(
        self, project_id: str, trigger: str = Trigger.MANUAL
    ) -> asyncio.Task[SyncOneResult]:
        """在后台启动单项目同步，不等待结果."""
        return self._spawn(self.sync_one(project_id, trigger), f"sync_one:{project_id}")

    @property
    def running_tasks(self) -> int:
        return len(self._background)

    async def wait_background(self) -> None:
        """等待所有后台运行结束（关闭服务和测试时使用）."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            logger.warning(f"后台同步被取消: {task.get_name()}")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"后台同步失败 {task.get_name()}: {error!r}")


# 全局调度器（由 main 在启动时设置）
_scheduler: SyncScheduler | None = None


def set_sync_scheduler(scheduler: SyncScheduler | None) -> None:
    global _scheduler
    _scheduler = scheduler


def get_sync_scheduler() -> SyncScheduler:
    """FastAPI 依赖：获取同步调度器."""
    if _scheduler is None:
        msg = "同步调度器未初始化"
        raise RuntimeError(msg)
    return _scheduler

"""项目同步引擎 - 时间快照递归复制 + 断点续传 (continue mode).

每次运行:
1. 并发保护：项目处于 pending 且 2 小时内更新过则拒绝执行
2. 计算检查点 max(sync_start_date, next_sync_timestamp || last_success_sync_timestamp)
3. 上次失败/中断时加载未解决会话的成功文件作为跳过集
4. 深度优先遍历源文件夹，复制检查点之后变更的文件
5. 持久化会话、心跳，回写续传链接和项目元数据
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from drivesync.config import SyncSettings
from drivesync.core.cancellation import CancellationRegistry
from drivesync.core.drive import DriveClient, DriveFile, DriveNotFoundError
from drivesync.core.repository import SyncRepository
from drivesync.models.project import Project
from drivesync.models.status import (
    FAILED_SYNC_STATUSES,
    FileStatus,
    LastSyncStatus,
    ProjectStatus,
    SessionStatus,
    Trigger,
)
from drivesync.models.sync import FileLog, SyncSession
from drivesync.utils.timeutil import EPOCH, local_now, utcnow, versioned_file_name

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Cutoff timeout: đã vượt quá {seconds} giây. Safe exit."
USER_STOP_MESSAGE = "Đã dừng đồng bộ theo yêu cầu của người dùng. Safe exit."
LOCKED_MESSAGE = "Dự án đang được đồng bộ bởi một tiến trình khác. Bỏ qua lần chạy này."
SOURCE_NOT_FOUND_MESSAGE = "Source file not found (deleted)"


def resolve_checkpoint(project: Project) -> datetime:
    """计算本次扫描的起始时间."""
    floor = project.sync_start_date or EPOCH
    checkpoint = project.next_sync_timestamp or project.last_success_sync_timestamp or EPOCH
    return max(floor, checkpoint)


def is_locked(project: Project, now: datetime, stale_after: timedelta) -> bool:
    """项目是否被另一个进行中的同步占用（超过 stale_after 视为过期锁）."""
    if project.last_sync_status != LastSyncStatus.PENDING:
        return False
    return now - project.updated_at < stale_after


@dataclass
class FolderFrame:
    """待遍历的文件夹."""

    source_id: str
    path_prefix: str
    dest_id: str | None = None
    # dest_id 未知时，按名称在 dest_parent_id 下查找或创建
    dest_parent_id: str | None = None
    name: str = ""


@dataclass
class SyncContext:
    """单次运行的遍历状态."""

    project: Project
    session: SyncSession
    settings: SyncSettings
    since: datetime
    started_at: float
    pending_sessions: list[SyncSession] = field(default_factory=list)
    skip_set: dict[str, FileLog] = field(default_factory=dict)
    log_batch: list[FileLog] = field(default_factory=list)
    interrupted: bool = False

    @property
    def continue_mode(self) -> bool:
        return bool(self.pending_sessions)

    def previous_success(self, file: DriveFile, source_path: str) -> FileLog | None:
        """查找跳过集中的成功记录（优先文件 ID，其次源路径）."""
        return self.skip_set.get(file.id) or self.skip_set.get(source_path)


class ProjectSyncEngine:
    """单项目同步引擎."""

    def __init__(
        self,
        drive: DriveClient,
        repository: SyncRepository,
        cancellation: CancellationRegistry,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._drive = drive
        self._repo = repository
        self._cancellation = cancellation
        self._clock = clock

    async def sync_project(
        self,
        project: Project,
        run_id: str,
        settings: SyncSettings,
        trigger: str = Trigger.MANUAL,
    ) -> SyncSession:
        """同步单个项目，普通运行错误记录在返回的会话中而不抛出."""
        latest = await self._repo.get_project(project.id)
        if latest is not None:
            project = latest

        stale_after = timedelta(hours=settings.stale_lock_hours)
        if is_locked(project, utcnow(), stale_after):
            logger.warning(f"项目 {project.name} 正在同步中，跳过 (run_id={run_id})")
            return SyncSession(
                project_id=project.id,
                project_name=project.name,
                run_id=run_id,
                status=SessionStatus.SKIPPED,
                current=SessionStatus.SKIPPED,
                error_message=LOCKED_MESSAGE,
                triggered_by=trigger,
            )

        previous_status = project.last_sync_status
        project = await self._repo.update_project(
            project.id, last_sync_status=LastSyncStatus.PENDING
        )

        started_at = self._clock()
        since = resolve_checkpoint(project)
        logger.info(
            f"开始同步项目: {project.name}, run_id={run_id}, "
            f"triggered_by={trigger}, since={since.isoformat()}"
        )
        if previous_status:
            logger.info(f"上次同步状态: {previous_status}")

        pending_sessions, skip_set = await self._load_continue_state(project, previous_status)

        session = SyncSession(
            project_id=project.id,
            project_name=project.name,
            run_id=run_id,
            status=SessionStatus.RUNNING,
            current=SessionStatus.RUNNING,
            triggered_by=trigger,
        )
        await self._repo.create_or_replace_session(session)

        ctx = SyncContext(
            project=project,
            session=session,
            settings=settings,
            since=since,
            started_at=started_at,
            pending_sessions=pending_sessions,
            skip_set=skip_set,
        )

        try:
            await self._walk(ctx)
        except Exception as e:
            logger.exception(f"项目同步失败: {project.name}")
            self._set_status(session, SessionStatus.ERROR)
            session.error_message = str(e)

        await self._finalize(ctx)
        return session

    async def _load_continue_state(
        self, project: Project, previous_status: str | None
    ) -> tuple[list[SyncSession], dict[str, FileLog]]:
        """上次失败/中断时，收集未解决会话中已成功复制的文件."""
        if previous_status not in FAILED_SYNC_STATUSES:
            return [], {}

        pending_sessions = await self._repo.get_pending_sessions(project.id)
        logger.info(f"Continue mode: 找到 {len(pending_sessions)} 个未解决会话")

        skip_set: dict[str, FileLog] = {}
        for pending in pending_sessions:
            for log in await self._repo.get_file_logs(pending.id):
                if log.status != FileStatus.SUCCESS:
                    continue
                key = log.source_file_id or log.source_path
                known = skip_set.get(key)
                if known is None or _later(log.modified_date, known.modified_date):
                    skip_set[key] = log

        if skip_set:
            logger.info(f"Continue mode: {len(skip_set)} 个文件已成功同步，将跳过")
        return pending_sessions, skip_set

    async def _walk(self, ctx: SyncContext) -> None:
        """深度优先遍历：先处理当前文件夹的文件，再进入子文件夹."""
        stack = [
            FolderFrame(
                source_id=ctx.project.source_folder_id,
                dest_id=ctx.project.dest_folder_id,
                path_prefix="/",
            )
        ]

        while stack:
            frame = stack.pop()
            if self._should_stop(ctx):
                return

            dest_id = frame.dest_id
            if dest_id is None:
                dest_folder = await self._drive.find_or_create_folder(
                    frame.name, frame.dest_parent_id or ctx.project.dest_folder_id
                )
                dest_id = dest_folder.id

            files = await self._drive.list_modified_files(frame.source_id, ctx.since)
            await self._process_files(ctx, files, dest_id, frame.path_prefix)
            if ctx.interrupted:
                return

            sub_folders = await self._drive.list_sub_folders(frame.source_id)
            # 逆序入栈，保证按列表顺序出栈
            for folder in reversed(sub_folders):
                stack.append(
                    FolderFrame(
                        source_id=folder.id,
                        path_prefix=f"{frame.path_prefix}{folder.name}/",
                        dest_parent_id=dest_id,
                        name=folder.name,
                    )
                )

    async def _process_files(
        self,
        ctx: SyncContext,
        files: list[DriveFile],
        dest_folder_id: str,
        path_prefix: str,
    ) -> None:
        """按列表顺序处理文件夹内的文件."""
        session = ctx.session

        for file in files:
            if file.is_folder:
                continue
            if self._should_stop(ctx):
                return

            source_path = f"{path_prefix}{file.name}"
            previous = ctx.previous_success(file, source_path)
            if previous is not None and not _later(file.modified_time, previous.modified_date):
                logger.debug(f"跳过文件 (Continue Mode): {source_path}")
                continue

            entry = FileLog(
                session_id=session.id,
                file_name=file.name,
                source_link=file.view_link,
                source_path=source_path,
                source_file_id=file.id,
                created_date=file.created_time or utcnow(),
                modified_date=file.modified_time or utcnow(),
            )

            try:
                dest_name = await self._resolve_dest_name(ctx, file.name, dest_folder_id)
                copied = await self._drive.copy_file(file.id, dest_folder_id, dest_name)
                entry.dest_link = copied.view_link
                entry.file_size = file.size
                session.files_count += 1
                session.total_size_synced += file.size
            except DriveNotFoundError:
                logger.warning(f"源文件已不存在: {source_path}")
                entry.status = FileStatus.SKIPPED
                entry.error_message = SOURCE_NOT_FOUND_MESSAGE
                session.failed_files_count += 1
            except Exception as e:
                logger.error(f"文件同步失败 {source_path}: {e}")
                entry.status = FileStatus.ERROR
                entry.error_message = str(e)
                session.failed_files_count += 1
                self._demote_to_warning(session)

            ctx.log_batch.append(entry)
            if len(ctx.log_batch) >= ctx.settings.log_batch_size:
                await self._flush_logs(ctx)

    async def _resolve_dest_name(
        self, ctx: SyncContext, file_name: str, dest_folder_id: str
    ) -> str:
        """目标已有同名文件时，改名为 原名_vyyMMdd_HHmm.扩展名."""
        existing = await self._drive.find_files_by_name(file_name, dest_folder_id)
        if not existing:
            return file_name
        return versioned_file_name(file_name, local_now(ctx.settings.timezone))

    def _should_stop(self, ctx: SyncContext) -> bool:
        """检查超时或用户停止请求，触发时将会话标记为 interrupted."""
        if ctx.interrupted:
            return True

        project_id = ctx.project.id
        user_requested = self._cancellation.should_stop(project_id)
        cutoff = ctx.settings.effective_cutoff_seconds
        timed_out = self._clock() - ctx.started_at > cutoff
        if not (user_requested or timed_out):
            return False

        ctx.interrupted = True
        self._set_status(ctx.session, SessionStatus.INTERRUPTED)
        if user_requested:
            ctx.session.error_message = USER_STOP_MESSAGE
            self._cancellation.clear_stop(project_id)
        else:
            ctx.session.error_message = TIMEOUT_MESSAGE.format(seconds=cutoff)

        logger.warning(f"[{ctx.project.name}] {ctx.session.error_message}")
        return True

    async def _flush_logs(self, ctx: SyncContext) -> None:
        """保存已缓冲的文件日志并刷新会话进度；失败时降级为 warning."""
        if not ctx.log_batch:
            return

        batch = ctx.log_batch
        ctx.log_batch = []
        session = ctx.session

        try:
            await self._repo.append_file_logs(session.id, batch)
            await self._repo.update_session(
                session.id,
                status=session.status,
                current=session.current,
                files_count=session.files_count,
                failed_files_count=session.failed_files_count,
                total_size_synced=session.total_size_synced,
            )
        except Exception as e:
            logger.exception(f"文件日志保存失败 (session={session.id})")
            self._demote_to_warning(session)
            note = f"Lưu log thất bại: {e}"
            session.error_message = (
                f"{session.error_message}; {note}" if session.error_message else note
            )

    async def _finalize(self, ctx: SyncContext) -> None:
        """收尾：保存会话、心跳、续传链接和项目元数据."""
        session = ctx.session

        if session.status == SessionStatus.RUNNING:
            self._set_status(session, SessionStatus.SUCCESS)

        await self._flush_logs(ctx)

        session.execution_duration_seconds = round(self._clock() - ctx.started_at)
        await self._repo.create_or_replace_session(session)
        await self._repo.record_heartbeat(ctx.project.id, session.status)

        if ctx.continue_mode:
            await self._reconcile_pending(ctx)

        await self._update_project(ctx)

        logger.info(
            f"项目 {ctx.project.name} 同步结束: 状态={session.status}, "
            f"文件={session.files_count}, 失败={session.failed_files_count}, "
            f"大小={session.total_size_synced}"
        )

    async def _reconcile_pending(self, ctx: SyncContext) -> None:
        """将本次结果写回被续传的旧会话，第一个旧会话链接到本次 run_id."""
        session = ctx.session
        for index, pending in enumerate(ctx.pending_sessions):
            changes: dict[str, str] = {"current": session.status}
            if index == 0:
                changes["continue_id"] = session.run_id
                logger.info(f"续传链接: {pending.run_id} -> {session.run_id}")
            try:
                await self._repo.update_session(pending.id, **changes)
            except Exception as e:
                logger.error(f"更新旧会话失败 {pending.id}: {e}")

    async def _update_project(self, ctx: SyncContext) -> None:
        """更新项目元数据；只有完全成功才推进检查点."""
        project = ctx.project
        session = ctx.session

        changes: dict[str, object] = {
            "last_sync_timestamp": session.timestamp,
            "last_sync_status": session.status,
            "files_count": (project.files_count or 0) + session.files_count,
            "total_size": (project.total_size or 0) + session.total_size_synced,
        }
        if session.status == SessionStatus.SUCCESS:
            changes["last_success_sync_timestamp"] = session.timestamp
            changes["next_sync_timestamp"] = session.timestamp
        if project.status == ProjectStatus.ERROR and session.status != SessionStatus.ERROR:
            changes["status"] = ProjectStatus.ACTIVE

        try:
            await self._repo.update_project(project.id, **changes)
        except Exception as e:
            logger.error(f"项目元数据更新失败 {project.id}: {e}")

    @staticmethod
    def _set_status(session: SyncSession, status: str) -> None:
        session.status = status
        session.current = status

    @classmethod
    def _demote_to_warning(cls, session: SyncSession) -> None:
        """文件级失败只会把 running/success 降为 warning."""
        if session.status in (SessionStatus.RUNNING, SessionStatus.SUCCESS):
            cls._set_status(session, SessionStatus.WARNING)


def _later(value: datetime | None, reference: datetime | None) -> bool:
    """value 是否晚于 reference（缺失时间视为更新）."""
    if value is None:
        return True
    if reference is None:
        return False
    return value > reference

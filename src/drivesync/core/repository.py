"""同步数据存储 - 项目、会话、文件日志、心跳."""

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from drivesync.models.app_settings import AppSettings
from drivesync.models.heartbeat import ProjectHeartbeat
from drivesync.models.project import Project
from drivesync.models.status import LastSyncStatus, SessionStatus
from drivesync.models.sync import FileLog, SyncSession
from drivesync.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

DEFAULT_STORE_BATCH_SIZE = 450
PENDING_LOOKBACK = 20
STUCK_SESSION_MESSAGE = "Tiến trình bị dừng đột ngột (khởi động lại dịch vụ)."


class ProjectNotFoundError(LookupError):
    """项目不存在或已删除."""


class SyncRepository:
    """同步相关数据的读写（每次调用使用独立会话）."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        batch_size: int = DEFAULT_STORE_BATCH_SIZE,
    ) -> None:
        self._session_factory = session_factory
        self.batch_size = max(1, batch_size)

    # ---------- 项目 ----------

    async def list_projects(self) -> list[Project]:
        """获取所有未删除的项目."""
        async with self._session_factory() as session:
            stmt = select(Project).where(Project.is_deleted == False)  # noqa: E712
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_project(self, project_id: str) -> Project | None:
        """按 ID 获取项目."""
        async with self._session_factory() as session:
            return await session.get(Project, project_id)

    async def update_project(self, project_id: str, **changes: Any) -> Project:
        """合并更新项目字段，并刷新 updated_at."""
        async with self._session_factory() as session:
            project = await session.get(Project, project_id)
            if project is None:
                msg = f"Project not found: {project_id}"
                raise ProjectNotFoundError(msg)

            for key, value in changes.items():
                setattr(project, key, value)
            project.updated_at = utcnow()

            await session.commit()
            return project

    # ---------- 会话 ----------

    async def create_or_replace_session(self, sync_session: SyncSession) -> SyncSession:
        """写入完整会话记录（存在则覆盖）."""
        async with self._session_factory() as session:
            await session.merge(sync_session)
            await session.commit()
        return sync_session

    async def update_session(self, session_id: str, **changes: Any) -> bool:
        """部分更新会话字段."""
        async with self._session_factory() as session:
            sync_session = await session.get(SyncSession, session_id)
            if sync_session is None:
                return False

            for key, value in changes.items():
                setattr(sync_session, key, value)
            await session.commit()
            return True

    async def get_pending_sessions(self, project_id: str) -> list[SyncSession]:
        """获取项目尚未被续传解决的失败/中断会话（新到旧）."""
        async with self._session_factory() as session:
            stmt = (
                select(SyncSession)
                .where(SyncSession.project_id == project_id)
                .order_by(SyncSession.timestamp.desc())  # type: ignore[attr-defined]
                .limit(PENDING_LOOKBACK)
            )
            result = await session.execute(stmt)
            sessions = result.scalars().all()

        return [
            s
            for s in sessions
            if s.status in (SessionStatus.ERROR, SessionStatus.INTERRUPTED)
            and (s.current or s.status) != SessionStatus.SUCCESS
        ]

    async def list_sessions(
        self, project_id: str | None = None, limit: int = 50
    ) -> list[SyncSession]:
        """最近的会话历史."""
        async with self._session_factory() as session:
            stmt = select(SyncSession)
            if project_id:
                stmt = stmt.where(SyncSession.project_id == project_id)
            stmt = stmt.order_by(SyncSession.timestamp.desc()).limit(limit)  # type: ignore[attr-defined]
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def reset_stuck_sessions(self) -> int:
        """将遗留的 running 会话标记为 interrupted（服务重启后恢复）.

        对应项目仍处于 pending/running 时一并改为 interrupted，
        下次运行进入续传模式.
        """
        async with self._session_factory() as session:
            stmt = select(SyncSession).where(SyncSession.status == SessionStatus.RUNNING)
            result = await session.execute(stmt)
            stuck = result.scalars().all()

            for sync_session in stuck:
                sync_session.status = SessionStatus.INTERRUPTED
                sync_session.current = SessionStatus.INTERRUPTED
                sync_session.error_message = STUCK_SESSION_MESSAGE

            project_ids = {s.project_id for s in stuck}
            for project_id in project_ids:
                project = await session.get(Project, project_id)
                if project is not None and project.last_sync_status in (
                    LastSyncStatus.PENDING,
                    LastSyncStatus.RUNNING,
                ):
                    project.last_sync_status = LastSyncStatus.INTERRUPTED

            await session.commit()

        if stuck:
            logger.info(f"已重置 {len(stuck)} 个卡在 running 的会话")
        return len(stuck)

    # ---------- 动态配置 ----------

    async def load_app_settings(self) -> AppSettings | None:
        """读取数据库中的动态配置行."""
        async with self._session_factory() as session:
            result = await session.execute(select(AppSettings))
            return result.scalar_one_or_none()

    # ---------- 文件日志 ----------

    async def append_file_logs(self, session_id: str, entries: Sequence[FileLog]) -> None:
        """按批次追加文件日志."""
        for start in range(0, len(entries), self.batch_size):
            chunk = entries[start : start + self.batch_size]
            async with self._session_factory() as session:
                for entry in chunk:
                    entry.session_id = session_id
                session.add_all(chunk)
                await session.commit()
            logger.debug(f"已保存 {len(chunk)} 条文件日志 (session={session_id})")

    async def get_file_logs(self, session_id: str) -> list[FileLog]:
        """获取会话的全部文件日志."""
        async with self._session_factory() as session:
            stmt = select(FileLog).where(FileLog.session_id == session_id)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ---------- 心跳 ----------

    async def record_heartbeat(self, project_id: str, status: str) -> None:
        """记录项目心跳（失败只记录日志）."""
        try:
            async with self._session_factory() as session:
                await session.merge(
                    ProjectHeartbeat(
                        project_id=project_id,
                        last_check_timestamp=utcnow(),
                        last_status=status,
                    )
                )
                await session.commit()
        except Exception as e:
            logger.warning(f"心跳保存失败 {project_id}: {e}")

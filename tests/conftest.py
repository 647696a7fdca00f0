"""测试配置和 fixtures."""

from collections.abc import AsyncGenerator
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import drivesync.models  # noqa: F401
from drivesync.config import SyncSettings
from drivesync.core.cancellation import CancellationRegistry
from drivesync.core.drive import FOLDER_MIME_TYPE, DriveFile
from drivesync.core.engine import ProjectSyncEngine
from drivesync.core.repository import SyncRepository
from drivesync.models.database import create_session_factory, create_tables
from drivesync.models.project import Project

SOURCE_ROOT = "src-root"
DEST_ROOT = "dest-root"


class FakeDrive:
    """内存中的 Drive，记录所有复制和建目录操作."""

    def __init__(self) -> None:
        self.children: dict[str, list[DriveFile]] = {}
        self.dest_names: dict[str, set[str]] = {}
        self.dest_folders: dict[tuple[str, str], str] = {}
        self.copies: list[tuple[str, str, str]] = []
        self.calls: list[str] = []

    def add_file(
        self,
        folder_id: str,
        file_id: str,
        name: str,
        modified: datetime,
        size: int = 10,
    ) -> DriveFile:
        file = DriveFile(
            id=file_id,
            name=name,
            mime_type="application/pdf",
            modified_time=modified,
            created_time=modified,
            size=size,
            parents=[folder_id],
        )
        self.children.setdefault(folder_id, []).append(file)
        return file

    def add_folder(
        self, parent_id: str, folder_id: str, name: str, modified: datetime | None = None
    ) -> DriveFile:
        folder = DriveFile(
            id=folder_id,
            name=name,
            mime_type=FOLDER_MIME_TYPE,
            modified_time=modified,
            created_time=modified,
            parents=[parent_id],
        )
        self.children.setdefault(parent_id, []).append(folder)
        return folder

    def add_dest_file(self, folder_id: str, name: str) -> None:
        self.dest_names.setdefault(folder_id, set()).add(name)

    async def list_modified_files(self, folder_id: str, since: datetime) -> list[DriveFile]:
        self.calls.append(f"list:{folder_id}")
        return [
            f
            for f in self.children.get(folder_id, [])
            if (f.modified_time and f.modified_time > since)
            or (f.created_time and f.created_time > since)
        ]

    async def list_sub_folders(self, folder_id: str) -> list[DriveFile]:
        return [f for f in self.children.get(folder_id, []) if f.is_folder]

    async def find_files_by_name(self, name: str, parent_folder_id: str) -> list[DriveFile]:
        if name in self.dest_names.get(parent_folder_id, set()):
            return [DriveFile(id=f"existing-{name}", name=name)]
        return []

    async def copy_file(self, file_id: str, dest_folder_id: str, name: str) -> DriveFile:
        self.copies.append((file_id, dest_folder_id, name))
        self.add_dest_file(dest_folder_id, name)
        return DriveFile(id=f"copy-{len(self.copies)}", name=name)

    async def find_or_create_folder(self, name: str, parent_folder_id: str) -> DriveFile:
        key = (parent_folder_id, name)
        if key not in self.dest_folders:
            self.dest_folders[key] = f"dest-{parent_folder_id}-{name}"
        return DriveFile(id=self.dest_folders[key], name=name, mime_type=FOLDER_MIME_TYPE)

    @property
    def copied_ids(self) -> list[str]:
        return [file_id for file_id, _, _ in self.copies]


class TickingClock:
    """每次读取前进固定步长的单调时钟."""

    def __init__(self, step: float = 0.0) -> None:
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**overrides: Any) -> SyncSettings:
    """测试用同步配置."""
    values: dict[str, Any] = {
        "sync_cutoff_seconds": 300,
        "enable_auto_schedule": True,
        "enable_notifications": False,
        "webhook_url": "",
        "sync_concurrency": 5,
        "log_batch_size": 50,
        "stale_lock_hours": 2.0,
        "timezone": "Asia/Ho_Chi_Minh",
    }
    values.update(overrides)
    return SyncSettings(**values)


@pytest_asyncio.fixture
async def session_factory(
    tmp_path: Path,
) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """创建测试用的临时文件数据库."""
    engine, factory = create_session_factory(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables(engine)
    yield factory
    await engine.dispose()


@pytest.fixture
def repository(session_factory: async_sessionmaker[AsyncSession]) -> SyncRepository:
    return SyncRepository(session_factory, batch_size=450)


@pytest.fixture
def drive() -> FakeDrive:
    return FakeDrive()


@pytest.fixture
def cancellation() -> CancellationRegistry:
    return CancellationRegistry()


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def engine(
    drive: FakeDrive,
    repository: SyncRepository,
    cancellation: CancellationRegistry,
    clock: TickingClock,
) -> ProjectSyncEngine:
    return ProjectSyncEngine(drive, repository, cancellation, clock=clock)  # type: ignore[arg-type]


@pytest.fixture
def make_project(
    session_factory: async_sessionmaker[AsyncSession],
):
    """创建并保存项目."""

    async def _make(**fields: Any) -> Project:
        values: dict[str, Any] = {
            "name": "Project",
            "source_folder_id": SOURCE_ROOT,
            "dest_folder_id": DEST_ROOT,
        }
        values.update(fields)
        project = Project(**values)
        async with session_factory() as session:
            session.add(project)
            await session.commit()
        return project

    return _make

"""测试同步 API."""

from collections.abc import AsyncGenerator
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from drivesync.core.sync_scheduler import get_sync_scheduler
from drivesync.main import app
from drivesync.models.status import SessionStatus, Trigger
from drivesync.models.sync import SyncSession


@pytest.fixture
def scheduler(repository) -> MagicMock:
    """使用真实存储、后台启动被替换的调度器."""
    mock = MagicMock()
    mock.repository = repository
    return mock


@pytest_asyncio.fixture
async def client(scheduler: MagicMock) -> AsyncGenerator[AsyncClient, None]:
    """创建测试用的 HTTP 客户端."""
    app.dependency_overrides[get_sync_scheduler] = lambda: scheduler
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


class TestSyncApi:
    """测试同步触发接口."""

    async def test_sync_all_runs_in_background(self, client, scheduler) -> None:
        response = await client.post("/api/sync/all")

        assert response.status_code == 200
        assert response.json()["success"] is True
        scheduler.launch_all.assert_called_once_with(Trigger.MANUAL)

    async def test_sync_project(self, client, scheduler, make_project) -> None:
        project = await make_project()

        response = await client.post(f"/api/sync/{project.id}")

        assert response.status_code == 200
        assert response.json()["project_id"] == project.id
        scheduler.launch_one.assert_called_once_with(project.id, Trigger.MANUAL)

    async def test_sync_unknown_project(self, client, scheduler) -> None:
        response = await client.post("/api/sync/missing")

        assert response.status_code == 404
        scheduler.launch_one.assert_not_called()

    async def test_stop(self, client, scheduler) -> None:
        response = await client.post("/api/sync/stop/p1")

        assert response.status_code == 200
        assert "dừng" in response.json()["message"]
        scheduler.request_stop.assert_called_once_with("p1")

    async def test_list_sessions(self, client, repository) -> None:
        await repository.create_or_replace_session(
            SyncSession(
                project_id="p1",
                project_name="A",
                run_id="run-1",
                status=SessionStatus.SUCCESS,
                files_count=4,
            )
        )

        response = await client.get("/api/sync/sessions", params={"project_id": "p1"})

        assert response.status_code == 200
        items = response.json()["items"]
        assert len(items) == 1
        assert items[0]["run_id"] == "run-1"
        assert items[0]["files_count"] == 4


class TestHealth:
    async def test_health(self, client) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

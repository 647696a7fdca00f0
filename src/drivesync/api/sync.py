"""同步 API - 后台触发、停止与会话历史."""

from fastapi import APIRouter, Depends, HTTPException

from drivesync.core.sync_scheduler import SyncScheduler, get_sync_scheduler
from drivesync.models.status import Trigger
from drivesync.models.sync import SyncSession

router = APIRouter(prefix="/api/sync", tags=["sync"])


def _session_to_dict(s: SyncSession) -> dict:
    return {
        "id": s.id,
        "project_id": s.project_id,
        "project_name": s.project_name,
        "run_id": s.run_id,
        "timestamp": s.timestamp.isoformat(),
        "status": s.status,
        "current": s.current,
        "files_count": s.files_count,
        "failed_files_count": s.failed_files_count,
        "total_size_synced": s.total_size_synced,
        "execution_duration_seconds": s.execution_duration_seconds,
        "error_message": s.error_message,
        "triggered_by": s.triggered_by,
        "continue_id": s.continue_id,
    }


@router.post("/all")
async def trigger_sync_all(
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
) -> dict:
    """在后台同步所有项目."""
    scheduler.launch_all(Trigger.MANUAL)
    return {
        "success": True,
        "message": "Đã bắt đầu đồng bộ toàn bộ dự án trong nền.",
    }


@router.post("/stop/{project_id}")
async def stop_sync(
    project_id: str,
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
) -> dict:
    """请求停止项目同步（完成当前文件后安全退出）."""
    scheduler.request_stop(project_id)
    return {
        "success": True,
        "message": (
            "Đã gửi yêu cầu dừng sync. "
            "Tiến trình sẽ dừng an toàn sau khi hoàn tất file hiện tại."
        ),
    }


@router.get("/sessions")
async def list_sessions(
    project_id: str | None = None,
    limit: int = 50,
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
) -> dict:
    """获取最近的同步会话."""
    limit = max(1, min(limit, 200))
    sessions = await scheduler.repository.list_sessions(project_id, limit)
    return {"items": [_session_to_dict(s) for s in sessions]}


@router.post("/{project_id}")
async def trigger_sync_project(
    project_id: str,
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
) -> dict:
    """在后台同步单个项目."""
    project = await scheduler.repository.get_project(project_id)
    if project is None or project.is_deleted:
        raise HTTPException(status_code=404, detail="项目不存在")

    scheduler.launch_one(project_id, Trigger.MANUAL)
    return {
        "success": True,
        "project_id": project_id,
        "message": "Quá trình đồng bộ đã bắt đầu và đang chạy trong nền.",
    }

"""DriveSync 主应用入口."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from drivesync import __version__
from drivesync.api import sync
from drivesync.config import get_effective_setting, get_settings, set_dynamic_settings
from drivesync.core.cancellation import CancellationRegistry
from drivesync.core.drive import DriveClient, DriveConfig
from drivesync.core.engine import ProjectSyncEngine
from drivesync.core.notifier import WebhookNotifier
from drivesync.core.repository import SyncRepository
from drivesync.core.retry import RetryPolicy
from drivesync.core.sync_scheduler import SyncScheduler, set_sync_scheduler
from drivesync.models.database import async_session_maker, close_db, init_db
from drivesync.scheduler import create_scheduler, shutdown_scheduler

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def _load_dynamic_settings(repository: SyncRepository) -> None:
    """从数据库加载动态配置（每次同步运行前也会重新加载）."""
    db_settings = await repository.load_app_settings()
    if db_settings:
        set_dynamic_settings(db_settings.to_settings_dict())
        logger.info("动态配置已加载")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """应用生命周期管理."""
    app_settings = get_settings()

    # 启动时初始化
    logger.info("正在初始化数据库...")
    await init_db(app_settings.database_url)

    repository = SyncRepository(async_session_maker(), app_settings.store_batch_size)

    logger.info("正在加载动态配置...")
    await _load_dynamic_settings(repository)

    # 重置卡住的 running 会话
    logger.info("正在检查并重置卡住的会话...")
    await repository.reset_stuck_sessions()

    drive = DriveClient(
        DriveConfig(
            client_id=app_settings.google_client_id,
            client_secret=app_settings.google_client_secret,
            refresh_token=app_settings.google_refresh_token,
        ),
        retry=RetryPolicy(max_retries=app_settings.max_retries),
    )
    cancellation = CancellationRegistry()
    notifier = WebhookNotifier()
    sync_scheduler = SyncScheduler(
        engine=ProjectSyncEngine(drive, repository, cancellation),
        repository=repository,
        cancellation=cancellation,
        notifier=notifier,
    )
    set_sync_scheduler(sync_scheduler)

    if get_effective_setting("enable_auto_schedule"):
        logger.info("正在启动定时任务...")
        create_scheduler(sync_scheduler)
    else:
        logger.info("自动同步已关闭，不启动定时任务")

    logger.info("DriveSync 启动完成！")
    yield

    # 关闭时清理
    logger.info("正在关闭...")
    await shutdown_scheduler()
    await sync_scheduler.wait_background()
    set_sync_scheduler(None)
    await notifier.close()
    await drive.close()
    await close_db()
    logger.info("DriveSync 已关闭")


app = FastAPI(
    title="DriveSync",
    description="Google Drive 多项目增量同步服务",
    version=__version__,
    lifespan=lifespan,
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(sync.router)


@app.get("/")
async def root() -> dict:
    """根路径."""
    return {
        "name": "DriveSync",
        "version": __version__,
        "description": "Google Drive 多项目增量同步服务",
    }


@app.get("/health")
async def health() -> dict:
    """健康检查."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "drivesync.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )

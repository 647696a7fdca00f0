"""数据库初始化和会话管理."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

logger = logging.getLogger(__name__)

# 全局引擎和会话工厂
_engine: Any = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_session_factory(database_url: str) -> tuple[Any, async_sessionmaker[AsyncSession]]:
    """创建异步引擎与会话工厂."""
    engine = create_async_engine(database_url, echo=False)
    factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, factory


async def create_tables(engine: Any) -> None:
    """创建所有表."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def init_db(database_url: str) -> None:
    """初始化数据库，创建所有表."""
    global _engine, _session_factory

    # 导入模型以注册表结构
    import drivesync.models  # noqa: F401

    _engine, _session_factory = create_session_factory(database_url)
    await create_tables(_engine)
    logger.info(f"数据库已初始化: {database_url}")


async def close_db() -> None:
    """释放数据库连接."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def async_session_maker() -> async_sessionmaker[AsyncSession]:
    """获取会话工厂（用于后台任务）."""
    if _session_factory is None:
        msg = "数据库未初始化，请先调用 init_db()"
        raise RuntimeError(msg)
    return _session_factory

# =============================================================================
# 数据库连接管理模块
# =============================================================================
# 本模块负责 CampusCache 的 SQLite 缓存库连接管理，是仓储层的基础。
# 主要职责：
#   1. 创建和管理 SQLAlchemy 异步数据库引擎（sqlite+aiosqlite）
#   2. 提供建表（init_db）与关闭（close_db）功能
#   3. 提供数据库健康检查
#
# 架构设计说明：
#   - 使用模块级全局变量 _engine 实现单例模式，整个进程共享一个连接池
#   - 延迟导入 settings 模块，避免循环依赖
#   - 每个新连接设置 WAL 日志模式与 busy_timeout，
#     预热并发写入时读请求不被阻塞
# =============================================================================

"""Database engine management for CampusCache."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from core.models import Base

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None

# 写锁等待上限（毫秒）
_BUSY_TIMEOUT_MS = 30000


def _json_dumps(value) -> str:
    return json.dumps(value, ensure_ascii=False)


def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={_BUSY_TIMEOUT_MS}")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_engine_for_path(path: Path, echo: bool = False) -> AsyncEngine:
    """Create an aiosqlite engine for the cache file at ``path``.

    创建指向 SQLite 文件的异步引擎，并注册连接级 PRAGMA。
    父目录不存在时自动创建。

    Args:
        path: SQLite database file.
        echo: Log emitted SQL.

    Returns:
        AsyncEngine: Engine bound to ``sqlite+aiosqlite:///{path}``.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{path}",
        echo=echo,
        # JSON 列保留中文原文，教师/学程的 LIKE 查询才能命中
        json_serializer=_json_dumps,
    )
    event.listen(engine.sync_engine, "connect", _set_sqlite_pragmas)
    return engine


def get_engine() -> AsyncEngine:
    """Get or create the shared async engine."""
    global _engine
    if _engine is None:
        from settings import settings

        _engine = create_engine_for_path(settings.database_path)
        logger.info("Database engine created (%s)", settings.database_path)
    return _engine


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Create all cache tables if they do not already exist."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created/verified")


async def close_db() -> None:
    """Dispose the shared engine."""
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None
        logger.info("Database connections closed")


async def check_db_connection(engine: Optional[AsyncEngine] = None) -> bool:
    """Return True if a ``SELECT 1`` succeeds."""
    try:
        async with (engine or get_engine()).connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False

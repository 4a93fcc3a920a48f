# =============================================================================
# ORM 基础模型与通用混入类模块
# =============================================================================
# 本模块定义了 CampusCache 所有 SQLAlchemy ORM 模型的基类和缓存时间戳混入。
# 主要职责：
#   1. 提供所有 ORM 模型的声明式基类（Base），统一模型注册与元数据管理
#   2. 提供 CachedMixin：以整数秒记录写入时间 cached_at，读取时据此判断新鲜度
#
# 设计决策：
#   - 使用 SQLAlchemy 2.0 风格的 DeclarativeBase 声明式基类
#   - cached_at 使用 Unix 秒而非 DateTime，TTL 比较只是整数减法
#   - cached_at 由仓储层在写入时显式赋值，保证同一批记录时间一致
# =============================================================================

"""Base models and mixins for CampusCache."""

from __future__ import annotations

import time

from sqlalchemy import Integer
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all ORM models.

    All cache tables inherit from this base so they are registered in
    ``Base.metadata`` for schema creation.
    """

    pass


def now_ts() -> int:
    """Current wall-clock time in whole seconds."""
    return int(time.time())


class CachedMixin:
    """Mixin providing the integer ``cached_at`` column.

    记录被写入（或整行替换）时的 Unix 秒。
    """

    cached_at: Mapped[int] = mapped_column(
        Integer,
        default=now_ts,
        nullable=False,
        index=True,
    )

# =============================================================================
# 模块: core/models/course.py
# 功能: 课程、历史课程与学程缓存表
# 核心模型:
#   - Course: 预热覆盖的近两学年课程
#   - HistoricalCourse: 按需查询的旧学年课程，独立表、独立 TTL
#   - Program: 学分学程/微学程清单（来自数位学苑）
# 设计决策:
#   1. uid = 学年度 + 学期 + 课号，是不可变属性的纯函数
#   2. 教师、教师链接、上课时间、地点、学程需求等序列以 JSON 列保存，
#      只在标量字段（year、term、title）上建索引
#   3. Course 与 HistoricalCourse 共用列定义（CourseColumnsMixin），
#      两表互不重叠，按查询意图区分
# =============================================================================

"""Course, historical course and program cache models."""

from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy import JSON, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.models.base import Base, CachedMixin


class CourseColumnsMixin(CachedMixin):
    """Columns shared by ``courses`` and ``historical_courses``."""

    uid: Mapped[str] = mapped_column(String(32), primary_key=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    # 1 或 2
    term: Mapped[int] = mapped_column(Integer, nullable=False)
    no: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    # 与 teacher_urls 等长，下标一一对应
    teachers: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    teacher_urls: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    times: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    locations: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    detail_url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    note: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # [{"program_name": ..., "course_type": "必"|"選"}, ...]
    programs: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)


class Course(Base, CourseColumnsMixin):
    """Course offered in a recent semester."""

    __tablename__ = "courses"
    __table_args__ = (
        Index("ix_courses_year_term", "year", "term"),
        Index("ix_courses_title", "title"),
    )

    def __repr__(self) -> str:
        return f"<Course(uid={self.uid}, title={self.title})>"


class HistoricalCourse(Base, CourseColumnsMixin):
    """Course from an older academic year, fetched on demand."""

    __tablename__ = "historical_courses"
    __table_args__ = (
        Index("ix_historical_courses_year_term", "year", "term"),
        Index("ix_historical_courses_title", "title"),
    )

    def __repr__(self) -> str:
        return f"<HistoricalCourse(uid={self.uid}, title={self.title})>"


class Program(Base, CachedMixin):
    """Credit program / micro program listed on the LMS board."""

    __tablename__ = "programs"

    name: Mapped[str] = mapped_column(String(255), primary_key=True)
    # 资料夹分类，例如「學士學分學程」「碩士跨域微學程」
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    url: Mapped[str] = mapped_column(Text, nullable=False, default="")

    def __repr__(self) -> str:
        return f"<Program(name={self.name})>"

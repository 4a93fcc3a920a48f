# =============================================================================
# 模块: core/models/people.py
# 功能: 学生与通讯录缓存表
# 核心模型:
#   - Student: 学号 -> 姓名、入学年度、系所（系所由学号位数推导）
#   - Contact: 校内通讯录，单位（organization）与个人（individual）共用一张表
# 设计决策:
#   1. 主键都是由不可变属性推导的自然键，重复爬取同一实体会覆盖同一行
#   2. Contact.type 用 CHECK 约束限定两种取值
# =============================================================================

"""Student and contact cache models."""

from __future__ import annotations

from sqlalchemy import CheckConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.models.base import Base, CachedMixin


class Student(Base, CachedMixin):
    """Cached student directory entry."""

    __tablename__ = "students"
    __table_args__ = (
        Index("ix_students_year_department", "year", "department"),
    )

    # 8 或 9 位数字学号
    id: Mapped[str] = mapped_column(String(16), primary_key=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    # 入学学年度（民国年，2 或 3 位）
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    department: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    def __repr__(self) -> str:
        return f"<Student(id={self.id}, name={self.name})>"


class Contact(Base, CachedMixin):
    """Cached campus directory entry (organization or individual)."""

    __tablename__ = "contacts"
    __table_args__ = (
        CheckConstraint("type IN ('individual', 'organization')", name="ck_contacts_type"),
    )

    # uid 由类型与名称组合而成，例如 org_教務處、individual_王小明_教務處
    uid: Mapped[str] = mapped_column(String(255), primary_key=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name_en: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    # 个人：所属单位；单位：空
    organization: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    extension: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    phone: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    # 以下字段仅单位使用
    website: Mapped[str] = mapped_column(Text, nullable=False, default="")
    location: Mapped[str] = mapped_column(Text, nullable=False, default="")
    superior: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    def __repr__(self) -> str:
        return f"<Contact(uid={self.uid}, type={self.type})>"

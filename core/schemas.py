# =============================================================================
# 缓存记录 Pydantic 数据结构模块
# =============================================================================
# 爬虫适配器产出这些记录，仓储层（core/store.py）写入 ORM 表，
# 读取时再通过 from_attributes 从 ORM 对象构建回来。
# 主要包含：
#   - StudentSchema, ContactSchema
#   - CourseSchema（含 ProgramRequirementSchema 序列）
#   - ProgramSchema, StickerSchema
# =============================================================================

"""Typed cache records."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from core.student_id import derive_department, extract_year

CONTACT_TYPE_ORGANIZATION = "organization"
CONTACT_TYPE_INDIVIDUAL = "individual"

COURSE_TYPE_REQUIRED = "必"
COURSE_TYPE_ELECTIVE = "選"


def format_course_uid(year: int, term: int, no: str) -> str:
    """Build a course uid: year ‖ term ‖ no (e.g. 1131U0001)."""
    return f"{year}{term}{no}"


class StudentSchema(BaseModel):
    """A student row; year and department must match what the id encodes."""

    id: str                              # 8 或 9 位学号
    name: str
    year: int                            # 入学学年度
    department: str                      # 由学号推导的系所名称
    cached_at: Optional[int] = None
    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def check_derived_fields(self) -> "StudentSchema":
        if self.year != extract_year(self.id):
            raise ValueError(
                f"year {self.year} does not match id {self.id!r} ({extract_year(self.id)})"
            )
        if self.department != derive_department(self.id):
            raise ValueError(
                f"department {self.department!r} does not match id {self.id!r} "
                f"({derive_department(self.id)!r})"
            )
        return self


class ContactSchema(BaseModel):
    uid: str
    type: str                            # organization / individual
    name: str
    name_en: str = ""
    organization: str = ""
    title: str = ""
    extension: str = ""
    phone: str = ""
    email: str = ""
    website: str = ""
    location: str = ""
    superior: str = ""
    cached_at: Optional[int] = None
    model_config = {"from_attributes": True}


class ProgramRequirementSchema(BaseModel):
    program_name: str
    course_type: str = COURSE_TYPE_ELECTIVE   # 必 / 選
    model_config = {"from_attributes": True}


class CourseSchema(BaseModel):
    """A course row.

    uid 必须等于 year‖term‖no；teachers 与 teacher_urls 必须等长。
    """

    uid: str
    year: int
    term: int
    no: str
    title: str
    teachers: List[str] = Field(default_factory=list)
    teacher_urls: List[str] = Field(default_factory=list)
    times: List[str] = Field(default_factory=list)
    locations: List[str] = Field(default_factory=list)
    detail_url: str = ""
    note: str = ""
    programs: List[ProgramRequirementSchema] = Field(default_factory=list)
    cached_at: Optional[int] = None
    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def check_invariants(self) -> "CourseSchema":
        if self.uid != format_course_uid(self.year, self.term, self.no):
            raise ValueError(
                f"uid {self.uid!r} does not match year/term/no "
                f"{format_course_uid(self.year, self.term, self.no)!r}"
            )
        if len(self.teachers) != len(self.teacher_urls):
            raise ValueError("teachers and teacher_urls must have the same length")
        return self


class ProgramSchema(BaseModel):
    name: str
    category: str = ""
    url: str = ""
    cached_at: Optional[int] = None
    model_config = {"from_attributes": True}


class StickerSchema(BaseModel):
    url: str
    source: str                          # spy_family / ichigo / fallback
    cached_at: Optional[int] = None
    model_config = {"from_attributes": True}

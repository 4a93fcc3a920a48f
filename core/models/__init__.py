"""ORM models for CampusCache.

Importing this package registers every table on ``Base.metadata``.
"""

from core.models.base import Base, CachedMixin, now_ts
from core.models.course import Course, HistoricalCourse, Program
from core.models.people import Contact, Student
from core.models.sticker import STICKER_SOURCES, Sticker

__all__ = [
    "Base",
    "CachedMixin",
    "now_ts",
    "Student",
    "Contact",
    "Course",
    "HistoricalCourse",
    "Program",
    "Sticker",
    "STICKER_SOURCES",
]

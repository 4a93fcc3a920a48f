# =============================================================================
# 模块: core/store.py
# 功能: 缓存仓储层（CacheStore）
# 架构角色: 查询服务与预热流程共用的持久化接口。
#   - 学生、通讯录、课程、历史课程、贴图、学程六类记录的读写与检索
#   - 读取时按 TTL 判断新鲜度：now - cached_at <= ttl 视为新鲜，否则视为未命中
#   - 写入一律为 INSERT ... ON CONFLICT DO UPDATE（按主键整行替换，后写者胜）
#   - purge_all 清空所有表并 VACUUM；purge_expired 删除过期记录
#
# 设计决策:
#   - 所有写入经同一把 asyncio.Lock 串行化，SQLite 本身也只允许单写者；
#     读取不加锁（WAL 模式下读写互不阻塞）
#   - SQLAlchemy 异常统一包装为 StoreError，调用方据此区分存储故障与上游故障
#   - 序列字段以 JSON 存储，标量字段上建索引
# =============================================================================
"""Cache repository over the SQLite store."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type

from sqlalchemy import Text, and_, cast, delete, func, or_, select, text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from common.errors import InvalidInputError, StoreError
from core.models import (
    Base,
    Contact,
    Course,
    HistoricalCourse,
    Program,
    Student,
    Sticker,
    now_ts,
)
from core.schemas import (
    ContactSchema,
    CourseSchema,
    ProgramSchema,
    StickerSchema,
    StudentSchema,
)

logger = logging.getLogger(__name__)

DEFAULT_TTL = 7 * 24 * 3600

# 检索上限
MAX_SEARCH_TERM_LENGTH = 100
MAX_COURSE_RESULTS = 500
MAX_STUDENT_RESULTS = 400
MAX_CONTACT_RESULTS = 500

# 单条多值 INSERT 的行数上限（SQLite 绑定参数数量有限制）
_UPSERT_CHUNK = 100

# purge_all 清空的表，顺序无依赖关系
_ALL_MODELS: Tuple[Type[Base], ...] = (
    Student, Contact, Course, HistoricalCourse, Sticker, Program,
)

Semester = Tuple[int, int]


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so ``term`` matches literally (ESCAPE '\\')."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _contains(column, term: str):
    return column.like(f"%{escape_like(term)}%", escape="\\")


def _contains_all_chars(column, term: str):
    """Every non-space character of ``term`` appears somewhere in ``column``."""
    chars = [c for c in dict.fromkeys(term) if not c.isspace()]
    return and_(*[_contains(column, c) for c in chars])


def contains_all_chars(value: str, term: str) -> bool:
    """Python counterpart of :func:`_contains_all_chars` (e.g. 線代 -> 線性代數)."""
    chars = [c for c in term if not c.isspace()]
    return bool(chars) and all(c in value for c in chars)


def _validate_term(term: str) -> str:
    term = (term or "").strip()
    if len(term) > MAX_SEARCH_TERM_LENGTH:
        raise InvalidInputError(
            f"search term too long ({len(term)} > {MAX_SEARCH_TERM_LENGTH})"
        )
    return term


def _chunks(rows: List[Dict[str, Any]], size: int) -> Iterable[List[Dict[str, Any]]]:
    for i in range(0, len(rows), size):
        yield rows[i:i + size]


class CacheStore:
    """Typed get/put/search over the cache tables.

    Args:
        engine: Async SQLAlchemy engine (sqlite+aiosqlite).
        ttl: Freshness window for regular records, in seconds.
        historical_ttl: Freshness window for historical courses.
        clock: Returns the current time in whole seconds.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        ttl: int = DEFAULT_TTL,
        historical_ttl: int = DEFAULT_TTL,
        clock: Callable[[], int] = now_ts,
    ):
        self.engine = engine
        self.ttl = ttl
        self.historical_ttl = historical_ttl
        self._clock = clock
        self._session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # 基础读写
    # ------------------------------------------------------------------
    def _fresh(self, model, ttl: Optional[int] = None):
        """WHERE clause selecting rows with now - cached_at <= ttl."""
        ttl = self.ttl if ttl is None else ttl
        return model.cached_at >= self._clock() - ttl

    async def _fetch(self, stmt) -> List[Any]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise StoreError(f"store read failed: {exc}") from exc

    async def _scalar(self, stmt) -> Any:
        try:
            async with self._session_factory() as session:
                return (await session.execute(stmt)).scalar_one()
        except SQLAlchemyError as exc:
            raise StoreError(f"store read failed: {exc}") from exc

    async def _upsert(self, model: Type[Base], rows: List[Dict[str, Any]]) -> int:
        """Insert or fully replace ``rows`` keyed on the primary key."""
        if not rows:
            return 0
        table = model.__table__
        pk = [c.name for c in table.primary_key.columns]
        cached_at = self._clock()
        for row in rows:
            row["cached_at"] = cached_at

        async with self._write_lock:
            try:
                async with self._session_factory() as session:
                    for chunk in _chunks(rows, _UPSERT_CHUNK):
                        stmt = sqlite_insert(table).values(chunk)
                        stmt = stmt.on_conflict_do_update(
                            index_elements=pk,
                            set_={
                                name: stmt.excluded[name]
                                for name in chunk[0]
                                if name not in pk
                            },
                        )
                        await session.execute(stmt)
                    await session.commit()
            except SQLAlchemyError as exc:
                raise StoreError(f"store write to {table.name} failed: {exc}") from exc
        return len(rows)

    # ------------------------------------------------------------------
    # 学生
    # ------------------------------------------------------------------
    async def get_student(self, student_id: str) -> Optional[StudentSchema]:
        rows = await self._fetch(
            select(Student).where(Student.id == student_id, self._fresh(Student))
        )
        return StudentSchema.model_validate(rows[0]) if rows else None

    async def save_students(self, students: Sequence[StudentSchema]) -> int:
        return await self._upsert(
            Student, [s.model_dump(exclude={"cached_at"}) for s in students]
        )

    async def search_students_by_name(self, term: str) -> List[StudentSchema]:
        """Students whose name contains every character of ``term``."""
        term = _validate_term(term)
        if not term:
            return []
        rows = await self._fetch(
            select(Student)
            .where(_contains_all_chars(Student.name, term), self._fresh(Student))
            .order_by(Student.year.desc(), Student.id)
            .limit(MAX_STUDENT_RESULTS)
        )
        return [StudentSchema.model_validate(r) for r in rows]

    async def get_students_by_year_department(
        self, year: int, department: str
    ) -> List[StudentSchema]:
        rows = await self._fetch(
            select(Student)
            .where(
                Student.year == year,
                Student.department == department,
                self._fresh(Student),
            )
            .order_by(Student.id)
        )
        return [StudentSchema.model_validate(r) for r in rows]

    # ------------------------------------------------------------------
    # 通讯录
    # ------------------------------------------------------------------
    async def get_contact(self, uid: str) -> Optional[ContactSchema]:
        rows = await self._fetch(
            select(Contact).where(Contact.uid == uid, self._fresh(Contact))
        )
        return ContactSchema.model_validate(rows[0]) if rows else None

    async def save_contacts(self, contacts: Sequence[ContactSchema]) -> int:
        return await self._upsert(
            Contact, [c.model_dump(exclude={"cached_at"}) for c in contacts]
        )

    async def search_contacts(self, term: str) -> List[ContactSchema]:
        """Contacts whose name, English name, title or organization contains ``term``."""
        term = _validate_term(term)
        if not term:
            return []
        rows = await self._fetch(
            select(Contact)
            .where(
                or_(
                    _contains(Contact.name, term),
                    _contains(Contact.name_en, term),
                    _contains(Contact.title, term),
                    _contains(Contact.organization, term),
                ),
                self._fresh(Contact),
            )
            .order_by(Contact.type.desc(), Contact.name)
            .limit(MAX_CONTACT_RESULTS)
        )
        return [ContactSchema.model_validate(r) for r in rows]

    # ------------------------------------------------------------------
    # 课程
    # ------------------------------------------------------------------
    async def get_course(self, uid: str) -> Optional[CourseSchema]:
        rows = await self._fetch(
            select(Course).where(Course.uid == uid, self._fresh(Course))
        )
        return CourseSchema.model_validate(rows[0]) if rows else None

    async def save_courses(self, courses: Sequence[CourseSchema]) -> int:
        return await self._upsert(
            Course, [c.model_dump(exclude={"cached_at"}) for c in courses]
        )

    async def search_courses_by_title(self, term: str) -> List[CourseSchema]:
        """Fresh courses whose title contains ``term`` literally, newest first."""
        term = _validate_term(term)
        if not term:
            return []
        rows = await self._fetch(
            select(Course)
            .where(_contains(Course.title, term), self._fresh(Course))
            .order_by(Course.year.desc(), Course.term.desc(), Course.uid)
            .limit(MAX_COURSE_RESULTS)
        )
        return [CourseSchema.model_validate(r) for r in rows]

    async def search_courses_by_teacher(self, term: str) -> List[CourseSchema]:
        """Fresh courses with a teacher whose name contains ``term``."""
        term = _validate_term(term)
        if not term:
            return []
        rows = await self._fetch(
            select(Course)
            .where(_contains(cast(Course.teachers, Text), term), self._fresh(Course))
            .order_by(Course.year.desc(), Course.term.desc(), Course.uid)
            .limit(MAX_COURSE_RESULTS)
        )
        # JSON 文本上的 LIKE 可能命中引号或逗号，按元素再过滤一次
        return [
            CourseSchema.model_validate(r)
            for r in rows
            if any(term in teacher for teacher in r.teachers)
        ]

    async def get_courses_by_year_term(self, year: int, term: int) -> List[CourseSchema]:
        rows = await self._fetch(
            select(Course)
            .where(Course.year == year, Course.term == term, self._fresh(Course))
            .order_by(Course.uid)
        )
        return [CourseSchema.model_validate(r) for r in rows]

    async def get_courses_by_semesters(self, semesters: Sequence[Semester]) -> List[CourseSchema]:
        """Fresh courses of any of the given (year, term) pairs."""
        if not semesters:
            return []
        condition = or_(
            *[and_(Course.year == year, Course.term == term) for year, term in semesters]
        )
        rows = await self._fetch(
            select(Course)
            .where(condition, self._fresh(Course))
            .order_by(Course.year.desc(), Course.term.desc(), Course.uid)
        )
        return [CourseSchema.model_validate(r) for r in rows]

    async def get_distinct_semesters(self, limit: int = 2) -> List[Semester]:
        """Most recent (year, term) pairs present in the fresh course cache."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Course.year, Course.term)
                    .where(self._fresh(Course))
                    .distinct()
                    .order_by(Course.year.desc(), Course.term.desc())
                    .limit(limit)
                )
                return [(row.year, row.term) for row in result]
        except SQLAlchemyError as exc:
            raise StoreError(f"store read failed: {exc}") from exc

    # ------------------------------------------------------------------
    # 历史课程（独立表与 TTL）
    # ------------------------------------------------------------------
    async def get_historical_course(self, uid: str) -> Optional[CourseSchema]:
        rows = await self._fetch(
            select(HistoricalCourse).where(
                HistoricalCourse.uid == uid,
                self._fresh(HistoricalCourse, self.historical_ttl),
            )
        )
        return CourseSchema.model_validate(rows[0]) if rows else None

    async def save_historical_courses(self, courses: Sequence[CourseSchema]) -> int:
        return await self._upsert(
            HistoricalCourse, [c.model_dump(exclude={"cached_at"}) for c in courses]
        )

    async def search_historical_courses(self, year: int, keyword: str) -> List[CourseSchema]:
        """Fresh historical courses of ``year`` whose title has every character of ``keyword``."""
        keyword = _validate_term(keyword)
        if not keyword:
            return []
        rows = await self._fetch(
            select(HistoricalCourse)
            .where(
                HistoricalCourse.year == year,
                _contains_all_chars(HistoricalCourse.title, keyword),
                self._fresh(HistoricalCourse, self.historical_ttl),
            )
            .order_by(HistoricalCourse.term.desc(), HistoricalCourse.uid)
            .limit(MAX_COURSE_RESULTS)
        )
        return [CourseSchema.model_validate(r) for r in rows]

    # ------------------------------------------------------------------
    # 学程
    # ------------------------------------------------------------------
    async def save_programs(self, programs: Sequence[ProgramSchema]) -> int:
        return await self._upsert(
            Program, [p.model_dump(exclude={"cached_at"}) for p in programs]
        )

    async def get_programs(self) -> List[ProgramSchema]:
        rows = await self._fetch(
            select(Program).where(self._fresh(Program)).order_by(Program.name)
        )
        return [ProgramSchema.model_validate(r) for r in rows]

    async def get_program_courses(
        self, program_name: str, semesters: Sequence[Semester]
    ) -> List[CourseSchema]:
        """Courses in ``semesters`` that count toward ``program_name``."""
        courses = await self.get_courses_by_semesters(semesters)
        return [
            c for c in courses
            if any(p.program_name == program_name for p in c.programs)
        ]

    # ------------------------------------------------------------------
    # 贴图
    # ------------------------------------------------------------------
    async def save_stickers(self, stickers: Sequence[StickerSchema]) -> int:
        return await self._upsert(
            Sticker, [s.model_dump(exclude={"cached_at"}) for s in stickers]
        )

    async def get_stickers(self, source: Optional[str] = None) -> List[StickerSchema]:
        stmt = select(Sticker).where(self._fresh(Sticker))
        if source:
            stmt = stmt.where(Sticker.source == source)
        rows = await self._fetch(stmt.order_by(Sticker.source, Sticker.url))
        return [StickerSchema.model_validate(r) for r in rows]

    async def sticker_stats(self) -> Dict[str, int]:
        """Number of stored stickers per source."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Sticker.source, func.count()).group_by(Sticker.source)
                )
                return {source: count for source, count in result}
        except SQLAlchemyError as exc:
            raise StoreError(f"store read failed: {exc}") from exc

    # ------------------------------------------------------------------
    # 统计与维护
    # ------------------------------------------------------------------
    async def count(self, model: Type[Base]) -> int:
        """Total rows of ``model`` regardless of freshness."""
        return await self._scalar(select(func.count()).select_from(model))

    async def count_students(self) -> int:
        return await self.count(Student)

    async def count_contacts(self) -> int:
        return await self.count(Contact)

    async def count_courses(self) -> int:
        return await self.count(Course)

    async def counts(self) -> Dict[str, int]:
        """Row counts of every cache table, keyed by table name."""
        return {model.__tablename__: await self.count(model) for model in _ALL_MODELS}

    async def purge_expired(self) -> Dict[str, int]:
        """Delete rows older than their TTL; returns deleted counts per table."""
        now = self._clock()
        deleted: Dict[str, int] = {}
        async with self._write_lock:
            try:
                async with self._session_factory() as session:
                    for model in _ALL_MODELS:
                        ttl = self.historical_ttl if model is HistoricalCourse else self.ttl
                        result = await session.execute(
                            delete(model).where(model.cached_at < now - ttl)
                        )
                        deleted[model.__tablename__] = result.rowcount or 0
                    await session.commit()
            except SQLAlchemyError as exc:
                raise StoreError(f"purge of expired rows failed: {exc}") from exc
        logger.info("Purged expired cache rows: %s", deleted)
        return deleted

    async def purge_all(self) -> None:
        """Delete every cached record, then VACUUM the file."""
        async with self._write_lock:
            try:
                async with self._session_factory() as session:
                    for model in _ALL_MODELS:
                        await session.execute(delete(model))
                    await session.commit()
                # VACUUM 不能在事务内执行
                async with self.engine.connect() as conn:
                    conn = await conn.execution_options(isolation_level="AUTOCOMMIT")
                    await conn.execute(text("VACUUM"))
            except SQLAlchemyError as exc:
                raise StoreError(f"purge failed: {exc}") from exc
        logger.warning("Cache purged (all tables)")


# =============================================================================
# 模块级单例
# =============================================================================
_store: Optional[CacheStore] = None


def get_store() -> CacheStore:
    """Return (and lazily create) the CacheStore bound to the shared engine."""
    global _store
    if _store is None:
        from core.database import get_engine
        from settings import settings

        _store = CacheStore(
            get_engine(),
            ttl=settings.cache_ttl,
            historical_ttl=settings.historical_cache_ttl,
        )
    return _store

# =============================================================================
# 模块: apps/query/service.py
# 功能: 查询服务（缓存优先，未命中时经 single-flight 调用爬虫）
# 架构角色: 对外的查询门面。每个意图的处理流程一致：
#   (a) 分类用户文本 (b) 查询缓存 (c) 未命中时经 SingleFlight 调用爬虫适配器
#   (d) 写回缓存 (e) 返回类型化记录，交由上层格式化
#
# 错误映射:
#   - 永久性上游错误（401/403/404、解析失败、Big5 编码失败）-> 视为「查无资料」
#   - 暂时性错误重试耗尽 -> UnavailableError（「暂时无法使用」）
#   - StoreError / InvalidInputError / 取消 -> 原样向上抛出
#   - 不回退到过期缓存：新鲜或未命中二选一
# =============================================================================
"""Cache-first query service."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar

from apps.query.classifier import Intent, IntentKind, classify
from apps.query.semester import roc_year, semesters_for_date
from apps.scraper import collect
from apps.scraper.ntpu import contact, course, student
from common.errors import (
    InvalidInputError,
    StoreError,
    UnavailableError,
    is_not_found,
)
from common.http import ScraperClient
from common.singleflight import SingleFlight
from core.schemas import ContactSchema, CourseSchema, ProgramSchema, StudentSchema, format_course_uid
from core.store import CacheStore, contains_all_chars

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 历史课程可查询的最早学年（民国 89 年 = 2000 年）
MIN_HISTORICAL_YEAR = 89

_STUDENT_ID_RE = re.compile(r"^\d{8,9}$")


@dataclass
class QueryResult:
    """Outcome of :meth:`QueryService.handle`."""

    intent: Intent
    records: List[Any] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.records)


def dedup_courses(courses: Iterable[CourseSchema]) -> List[CourseSchema]:
    """Drop repeated uids, keeping the first occurrence."""
    seen = set()
    unique: List[CourseSchema] = []
    for c in courses:
        if c.uid in seen:
            continue
        seen.add(c.uid)
        unique.append(c)
    return unique


def _matches(c: CourseSchema, keyword: str) -> bool:
    return contains_all_chars(c.title, keyword) or any(
        contains_all_chars(t, keyword) for t in c.teachers
    )


class QueryService:
    """Query facade over the cache store and the scraper adapters.

    Args:
        store: Cache repository.
        client: Shared scraper client.
        flight: Request coalescer shared by all handlers of the process.
        now: Wall-clock provider (semester arithmetic).
    """

    def __init__(
        self,
        store: CacheStore,
        client: ScraperClient,
        flight: Optional[SingleFlight] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.client = client
        self.flight = flight or SingleFlight()
        self.now = now

    # ------------------------------------------------------------------
    # 爬取封装
    # ------------------------------------------------------------------
    async def _coalesce(self, key: str, fn: Callable[[], Awaitable[T]], not_found: T) -> T:
        """Run ``fn`` through single-flight and map upstream errors.

        Returns ``not_found`` for permanent upstream failures.

        Raises:
            UnavailableError: Transient failures after retries were exhausted.
        """
        try:
            return await self.flight.do(key, fn)
        except (asyncio.CancelledError, StoreError, InvalidInputError):
            raise
        except Exception as exc:
            if is_not_found(exc):
                logger.info("Upstream has no data for %s: %s", key, exc)
                return not_found
            logger.warning("Upstream unavailable for %s: %s", key, exc)
            raise UnavailableError(f"upstream temporarily unavailable ({key})") from exc

    def semesters(self) -> List[tuple]:
        return semesters_for_date(self.now())

    # ------------------------------------------------------------------
    # 课程
    # ------------------------------------------------------------------
    async def get_course_by_uid(self, uid: str) -> Optional[CourseSchema]:
        """Return the course ``uid`` from cache, scraping it on a miss."""
        uid = uid.strip().upper()
        course.parse_course_uid(uid)

        cached = await self.store.get_course(uid)
        if cached is not None:
            logger.debug("Cache hit for course %s", uid)
            return cached

        async def fetch() -> Optional[CourseSchema]:
            found = await course.scrape_course_by_uid(self.client, uid)
            if found is not None:
                await self.store.save_courses([found])
            return found

        return await self._coalesce(f"course:uid:{uid}", fetch, None)

    async def get_course_by_no(self, no: str) -> Optional[CourseSchema]:
        """Find course number ``no`` in the two most recent semesters."""
        no = no.strip().upper()
        uids = [format_course_uid(year, term, no) for year, term in self.semesters()]

        for uid in uids:
            cached = await self.store.get_course(uid)
            if cached is not None:
                return cached

        last_error: Optional[UnavailableError] = None
        for uid in uids:
            try:
                found = await self.get_course_by_uid(uid)
            except UnavailableError as exc:
                last_error = exc
                continue
            if found is not None:
                return found
        if last_error is not None:
            raise last_error
        return None

    async def _scrape_semesters(
        self,
        key_prefix: str,
        scrape: Callable[[int, int], Any],
        keyword: str,
    ) -> List[CourseSchema]:
        """Scrape every recent semester, saving and merging results.

        单个学期查无资料时跳过；全部失败且无结果时抛出最后一个错误。
        """
        results: List[CourseSchema] = []
        last_error: Optional[UnavailableError] = None
        for year, term in self.semesters():
            async def fetch(year: int = year, term: int = term) -> List[CourseSchema]:
                courses = await collect(scrape(year, term))
                await self.store.save_courses(courses)
                return courses

            try:
                courses = await self._coalesce(f"{key_prefix}:{year}:{term}:{keyword}", fetch, [])
            except UnavailableError as exc:
                last_error = exc
                continue
            results.extend(courses)

        if not results and last_error is not None:
            raise last_error
        return dedup_courses(results)

    async def search_courses(self, keyword: str) -> List[CourseSchema]:
        """Unified title + teacher search.

        1. 缓存中按课名 / 教师 LIKE 查询
        2. 无结果时，在最近两学期缓存中做「所有字元皆出现」的模糊匹配
        3. 仍无结果时按课名爬取最近两学期
        4. 再无结果时爬取两学期全部课程并模糊过滤（可找到教师）
        """
        keyword = keyword.strip()
        if not keyword:
            raise InvalidInputError("empty course search keyword")

        courses = dedup_courses(
            await self.store.search_courses_by_title(keyword)
            + await self.store.search_courses_by_teacher(keyword)
        )
        if not courses:
            recent = await self.store.get_courses_by_semesters(self.semesters())
            courses = [c for c in recent if _matches(c, keyword)]
        if courses:
            logger.debug("Found %d cached courses for %r", len(courses), keyword)
            return courses

        logger.info("Cache miss for course search %r, scraping recent semesters", keyword)
        courses = await self._scrape_semesters(
            "course:title",
            lambda year, term: course.scrape_courses_by_title(self.client, year, term, keyword),
            keyword,
        )
        if courses:
            return courses

        everything = await self._scrape_semesters(
            "course:all",
            lambda year, term: course.scrape_courses(self.client, year, term),
            "",
        )
        return [c for c in everything if _matches(c, keyword)]

    async def search_courses_by_teacher(self, name: str) -> List[CourseSchema]:
        """Courses taught by ``name`` (cache first, then per-semester scrape)."""
        name = name.strip()
        if not name:
            raise InvalidInputError("empty teacher name")

        cached = await self.store.search_courses_by_teacher(name)
        if cached:
            return cached
        return await self._scrape_semesters(
            "course:teacher",
            lambda year, term: course.scrape_courses_by_teacher(self.client, year, term, name),
            name,
        )

    async def search_historical_courses(self, year: int, keyword: str) -> List[CourseSchema]:
        """Courses of an older ROC ``year`` whose title matches ``keyword``.

        近两学年转交 :meth:`search_courses`；更早的学年使用独立的历史课程表。

        Raises:
            InvalidInputError: ``year`` outside 89..current ROC year.
        """
        keyword = keyword.strip()
        current = roc_year(self.now())
        if year < MIN_HISTORICAL_YEAR or year > current:
            raise InvalidInputError(
                f"year must be between {MIN_HISTORICAL_YEAR} and {current}, got {year}"
            )
        if not keyword:
            raise InvalidInputError("empty course search keyword")

        if year >= current - 1:
            return await self.search_courses(keyword)

        cached = await self.store.search_historical_courses(year, keyword)
        if cached:
            return cached

        async def fetch() -> List[CourseSchema]:
            courses = await collect(course.scrape_courses_by_title(self.client, year, 0, keyword))
            await self.store.save_historical_courses(courses)
            return courses

        return await self._coalesce(f"course:historical:{year}:{keyword}", fetch, [])

    async def list_programs(self) -> List[ProgramSchema]:
        return await self.store.get_programs()

    async def get_program_courses(self, program_name: str) -> List[CourseSchema]:
        """Cached recent-semester courses that count toward ``program_name``."""
        return await self.store.get_program_courses(program_name, self.semesters())

    # ------------------------------------------------------------------
    # 学生
    # ------------------------------------------------------------------
    async def get_student_by_id(self, student_id: str) -> Optional[StudentSchema]:
        student_id = student_id.strip()
        if not _STUDENT_ID_RE.match(student_id):
            raise InvalidInputError(f"invalid student id: {student_id!r}")

        cached = await self.store.get_student(student_id)
        if cached is not None:
            return cached

        async def fetch() -> Optional[StudentSchema]:
            found = await student.scrape_student_by_id(self.client, student_id)
            if found is not None:
                await self.store.save_students([found])
            return found

        return await self._coalesce(f"student:id:{student_id}", fetch, None)

    async def search_students(self, name: str) -> List[StudentSchema]:
        """Name search over the warmed student cache (no upstream name search)."""
        return await self.store.search_students_by_name(name)

    # ------------------------------------------------------------------
    # 通讯录
    # ------------------------------------------------------------------
    async def search_contacts(self, term: str) -> List[ContactSchema]:
        term = term.strip()
        if not term:
            raise InvalidInputError("empty contact search term")

        cached = await self.store.search_contacts(term)
        if cached:
            return cached

        async def fetch() -> List[ContactSchema]:
            contacts = await collect(contact.scrape_contacts(self.client, term))
            await self.store.save_contacts(contacts)
            return contacts

        return await self._coalesce(f"contact:search:{term}", fetch, [])

    # ------------------------------------------------------------------
    # 统一入口
    # ------------------------------------------------------------------
    async def handle(self, text: str) -> QueryResult:
        """Classify ``text`` and dispatch to the matching lookup.

        Raises:
            InvalidInputError: Unrecognised text or malformed arguments.
            UnavailableError: Upstream temporarily unavailable.
            StoreError: Cache read failure.
        """
        intent = classify(text)
        handlers: Dict[IntentKind, Callable[[Intent], Awaitable[Any]]] = {
            IntentKind.COURSE_UID: lambda i: self.get_course_by_uid(i.term),
            IntentKind.COURSE_NO: lambda i: self.get_course_by_no(i.term),
            IntentKind.HISTORICAL_COURSE: lambda i: self.search_historical_courses(i.year, i.term),
            IntentKind.COURSE: lambda i: self.search_courses(i.term),
            IntentKind.STUDENT_ID: lambda i: self.get_student_by_id(i.term),
            IntentKind.STUDENT: lambda i: self.search_students(i.term),
            IntentKind.CONTACT: lambda i: self.search_contacts(i.term),
        }
        handler = handlers.get(intent.kind)
        if handler is None:
            raise InvalidInputError(f"unrecognised query: {text!r}")

        logger.info("Handling %s query %r", intent.kind.value, intent.term)
        result = await handler(intent)
        if result is None:
            records: List[Any] = []
        elif isinstance(result, list):
            records = result
        else:
            records = [result]
        return QueryResult(intent=intent, records=records)

# =============================================================================
# 模块: apps/warmup/runner.py
# 功能: 缓存预热运行器
# 架构角色: 预热流程的门面（Facade），由命令行入口 main.py 调用。
#   1. reset 时先清空整个缓存库
#   2. 按所选模块生成任务集（学生：学年 × 系代码；通讯录：行政 / 学术；
#      课程：本学年与上学年；贴图：各来源页面；学程：各文件夹）
#   3. 任务放入容量等于任务数的 asyncio.Queue，P 个 worker 并发消费
#   4. 每个任务调用爬虫适配器，按适配器产出顺序分批写入缓存，并累加计数
#   5. 单个任务失败只记录与计数，不终止其他 worker
#   6. 整体受 asyncio.wait_for 超时约束，超时后取消所有 worker，返回部分结果
#
# 模块失败判定:
#   - contacts：行政与学术两个入口都失败才算失败
#   - 其他模块：任一任务失败即算失败
# =============================================================================

"""Cache warmup runner.

Usage:
    runner = WarmupRunner(client, store, workers=3, timeout=1800)
    summary = await runner.run(["students", "courses"], reset=True)
    print(summary.to_dict())
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, Set

from apps.query.semester import roc_year
from apps.scraper.ntpu import contact, course, program, sticker, student
from common.errors import InvalidInputError
from common.http import ScraperClient
from core.store import CacheStore
from core.student_id import FULL_DEPARTMENT_NAMES

logger = logging.getLogger(__name__)

MODULE_STUDENTS = "students"
MODULE_CONTACTS = "contacts"
MODULE_COURSES = "courses"
MODULE_STICKERS = "stickers"
MODULE_PROGRAMS = "programs"

MODULES = (
    MODULE_STUDENTS,
    MODULE_CONTACTS,
    MODULE_COURSES,
    MODULE_STICKERS,
    MODULE_PROGRAMS,
)

MODULE_ALIASES = {
    "id": MODULE_STUDENTS,
    "student": MODULE_STUDENTS,
    "contact": MODULE_CONTACTS,
    "course": MODULE_COURSES,
    "sticker": MODULE_STICKERS,
    "program": MODULE_PROGRAMS,
}

# 单个任务累积多少条记录写一次库
SAVE_BATCH_SIZE = 200


def parse_modules(value: str) -> List[str]:
    """Parse a comma separated module list, resolving aliases.

    >>> parse_modules("id, course,courses")
    ['students', 'courses']

    Raises:
        InvalidInputError: An entry names no known module.
    """
    modules: List[str] = []
    for raw in (value or "").split(","):
        name = raw.strip().lower()
        if not name:
            continue
        name = MODULE_ALIASES.get(name, name)
        if name not in MODULES:
            raise InvalidInputError(
                f"unknown warmup module {raw.strip()!r} (valid: {', '.join(MODULES)})"
            )
        if name not in modules:
            modules.append(name)
    return modules


@dataclass
class WarmupTask:
    """One unit of work: an adapter call whose records go to one table."""

    module: str
    name: str
    fetch: Callable[[], AsyncIterator[Any]]


@dataclass
class WarmupSummary:
    """Summary of one warmup run.

    预热运行的汇总结果：各模块记录数、任务数、错误与失败模块。
    """

    modules: List[str] = field(default_factory=list)
    status: str = "pending"
    duration_seconds: float = 0.0
    counts: Dict[str, int] = field(default_factory=dict)
    tasks_total: Dict[str, int] = field(default_factory=dict)
    tasks_succeeded: Dict[str, int] = field(default_factory=dict)
    tasks_failed: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    failed_modules: List[str] = field(default_factory=list)
    timed_out: bool = False
    reset: bool = False
    timestamp: str = ""

    def __post_init__(self):
        for module in self.modules:
            self.counts.setdefault(module, 0)
            self.tasks_total.setdefault(module, 0)
            self.tasks_succeeded.setdefault(module, 0)
            self.tasks_failed.setdefault(module, 0)

    @property
    def success(self) -> bool:
        return not self.failed_modules and not self.timed_out

    @property
    def total_records(self) -> int:
        return sum(self.counts.values())

    def add_error(self, error: str) -> None:
        self.errors.append(error)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status,
            "modules": self.modules,
            "reset": self.reset,
            "duration_seconds": self.duration_seconds,
            "total_records": self.total_records,
            "counts": dict(self.counts),
            "tasks": {
                module: {
                    "total": self.tasks_total.get(module, 0),
                    "succeeded": self.tasks_succeeded.get(module, 0),
                    "failed": self.tasks_failed.get(module, 0),
                }
                for module in self.modules
            },
            "failed_modules": self.failed_modules,
            "timed_out": self.timed_out,
            "error_count": len(self.errors),
            "errors": self.errors,
            "timestamp": self.timestamp,
        }


class WarmupRunner:
    """Bounded worker pool that fills the cache from the upstream systems.

    Args:
        client: Shared scraper client.
        store: Cache repository.
        workers: Worker pool size (P).
        timeout: Whole-run timeout in seconds (T).
        student_year_from: Newest student enrolment year to crawl.
        student_year_to: Oldest student enrolment year to crawl.
        departments: Undergraduate department codes to crawl.
        now: Wall-clock provider.
    """

    def __init__(
        self,
        client: ScraperClient,
        store: CacheStore,
        workers: int = 3,
        timeout: float = 1800.0,
        student_year_from: int = 112,
        student_year_to: int = 101,
        departments: Optional[Sequence[str]] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        if workers < 1:
            raise InvalidInputError(f"workers must be >= 1, got {workers}")
        self.client = client
        self.store = store
        self.workers = workers
        self.timeout = timeout
        self.student_year_from = student_year_from
        self.student_year_to = student_year_to
        self.departments = list(departments) if departments is not None else list(FULL_DEPARTMENT_NAMES)
        self.now = now
        self._savers: Dict[str, Callable[[List[Any]], Awaitable[int]]] = {
            MODULE_STUDENTS: store.save_students,
            MODULE_CONTACTS: store.save_contacts,
            MODULE_COURSES: store.save_courses,
            MODULE_STICKERS: store.save_stickers,
            MODULE_PROGRAMS: store.save_programs,
        }

    @classmethod
    def from_settings(
        cls,
        client: ScraperClient,
        store: CacheStore,
        workers: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> "WarmupRunner":
        """Build a runner from the global settings, with optional overrides."""
        from settings import settings

        return cls(
            client,
            store,
            workers=workers or settings.scraper_workers,
            timeout=timeout or settings.warmup_timeout,
            student_year_from=settings.student_year_from,
            student_year_to=settings.student_year_to,
            departments=settings.departments,
        )

    # ------------------------------------------------------------------
    # 任务生成
    # ------------------------------------------------------------------
    def build_tasks(self, modules: Sequence[str]) -> List[WarmupTask]:
        """Expand the selected modules into their task sets."""
        tasks: List[WarmupTask] = []
        current = roc_year(self.now())

        if MODULE_STUDENTS in modules:
            newest = min(self.student_year_from, current)
            for year in range(newest, self.student_year_to - 1, -1):
                for dept in self.departments:
                    tasks.append(WarmupTask(
                        MODULE_STUDENTS,
                        f"students {year}/{dept}",
                        lambda y=year, d=dept: student.scrape_students(self.client, y, d),
                    ))

        if MODULE_CONTACTS in modules:
            tasks.append(WarmupTask(
                MODULE_CONTACTS, "contacts administrative",
                lambda: contact.scrape_administrative_contacts(self.client),
            ))
            tasks.append(WarmupTask(
                MODULE_CONTACTS, "contacts academic",
                lambda: contact.scrape_academic_contacts(self.client),
            ))

        if MODULE_COURSES in modules:
            # term=0 一次取回上下学期
            for year in (current, current - 1):
                tasks.append(WarmupTask(
                    MODULE_COURSES,
                    f"courses {year}",
                    lambda y=year: course.scrape_courses(self.client, y, 0),
                ))

        if MODULE_STICKERS in modules:
            for page in sticker.STICKER_PAGES:
                tasks.append(WarmupTask(
                    MODULE_STICKERS,
                    f"stickers {page.url}",
                    lambda p=page: sticker.scrape_sticker_page(self.client, p),
                ))

        if MODULE_PROGRAMS in modules:
            seen: Set[str] = set()
            for folder in program.PROGRAM_FOLDERS:
                tasks.append(WarmupTask(
                    MODULE_PROGRAMS,
                    f"programs {folder.id}",
                    lambda f=folder: program.scrape_program_folder(self.client, f, seen),
                ))

        return tasks

    # ------------------------------------------------------------------
    # 执行
    # ------------------------------------------------------------------
    async def run(self, modules: Sequence[str], reset: bool = False) -> WarmupSummary:
        """Run the warmup for ``modules``.

        Args:
            modules: Module names (see :func:`parse_modules`).
            reset: Purge every cache table before filling.

        Returns:
            WarmupSummary: Counts, errors and the failed modules.
        """
        modules = [m for m in MODULES if m in modules]
        summary = WarmupSummary(
            modules=modules,
            reset=reset,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        start = time.monotonic()

        if reset:
            logger.warning("Resetting cache before warmup")
            await self.store.purge_all()

        tasks = self.build_tasks(modules)
        for task in tasks:
            summary.tasks_total[task.module] += 1
        logger.info(
            "Starting warmup: modules=%s tasks=%d workers=%d timeout=%ss",
            ",".join(modules), len(tasks), self.workers, self.timeout,
        )

        queue: asyncio.Queue = asyncio.Queue(maxsize=max(len(tasks), 1))
        for task in tasks:
            queue.put_nowait(task)

        workers = [
            asyncio.create_task(self._worker(queue, summary))
            for _ in range(min(self.workers, len(tasks)))
        ]
        if workers:
            try:
                await asyncio.wait_for(asyncio.gather(*workers), timeout=self.timeout)
            except asyncio.TimeoutError:
                summary.timed_out = True
                summary.add_error(f"warmup timed out after {self.timeout}s")
                logger.error("Warmup timed out after %ss; %d tasks not started", self.timeout, queue.qsize())

        if MODULE_STICKERS in modules and summary.counts[MODULE_STICKERS] == 0 and not summary.timed_out:
            await self._save_fallback_stickers(summary)

        summary.failed_modules = self._failed_modules(summary)
        summary.duration_seconds = round(time.monotonic() - start, 2)
        summary.status = "success" if summary.success else "failed"
        logger.info(
            "Warmup finished in %.1fs: %s records=%s failed_modules=%s",
            summary.duration_seconds, summary.status, summary.counts, summary.failed_modules,
        )
        return summary

    async def _worker(self, queue: asyncio.Queue, summary: WarmupSummary) -> None:
        while True:
            try:
                task = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                await self._run_task(task, summary)
            finally:
                queue.task_done()

    async def _run_task(self, task: WarmupTask, summary: WarmupSummary) -> None:
        save = self._savers[task.module]
        saved = 0
        batch: List[Any] = []
        try:
            async for record in task.fetch():
                batch.append(record)
                if len(batch) >= SAVE_BATCH_SIZE:
                    saved += await save(batch)
                    summary.counts[task.module] += len(batch)
                    batch = []
            if batch:
                saved += await save(batch)
                summary.counts[task.module] += len(batch)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            summary.tasks_failed[task.module] += 1
            summary.add_error(f"{task.name}: {type(exc).__name__}: {exc}")
            logger.warning("Warmup task %s failed after %d records: %s", task.name, saved, exc)
            return
        summary.tasks_succeeded[task.module] += 1
        logger.debug("Warmup task %s saved %d records", task.name, saved)

    async def _save_fallback_stickers(self, summary: WarmupSummary) -> None:
        fallback = sticker.fallback_stickers()
        logger.warning("No sticker source succeeded, saving %d fallback stickers", len(fallback))
        try:
            summary.counts[MODULE_STICKERS] += await self.store.save_stickers(fallback)
        except Exception as exc:
            summary.add_error(f"stickers fallback: {type(exc).__name__}: {exc}")
            logger.error("Failed to save fallback stickers: %s", exc)

    @staticmethod
    def _failed_modules(summary: WarmupSummary) -> List[str]:
        failed = []
        for module in summary.modules:
            total = summary.tasks_total.get(module, 0)
            bad = summary.tasks_failed.get(module, 0)
            if module == MODULE_CONTACTS:
                if total and bad == total:
                    failed.append(module)
            elif bad:
                failed.append(module)
        return failed

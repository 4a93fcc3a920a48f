# =============================================================================
# 模块: apps/scraper/ntpu/student.py
# 功能: 学生资料爬虫（LMS 学习历程档案搜索页）
# 架构角色: 爬虫适配器之一。输入 (学年, 系代码) 或学号，输出 StudentSchema 序列。
#   - 系所名称完全由学号的数字位置推导（core/student_id.py），不依赖页面文字
#   - 搜索页分页：从 span.item 中读取最大页码，逐页请求
# =============================================================================
"""Student search adapter."""

from __future__ import annotations

import logging
from typing import AsyncIterator, List, Optional

from bs4 import BeautifulSoup

from common.http import ScraperClient
from core.schemas import StudentSchema
from core.student_id import derive_department, extract_year

logger = logging.getLogger(__name__)

DOMAIN = "lms"
SEARCH_PATH = "/portfolio/search.php"

# 学士班代码前缀
DEGREE_PREFIX_BACHELOR = "4"


def build_search_path(keyword: str, page: int = 1) -> str:
    return f"{SEARCH_PATH}?fmScope=2&page={page}&fmKeyword={keyword}"


def parse_max_page(doc: BeautifulSoup) -> int:
    """Largest page number shown in the pager (at least 1)."""
    total = 1
    for item in doc.select("span.item"):
        try:
            page = int(item.get_text().strip())
        except ValueError:
            continue
        total = max(total, page)
    return total


def parse_students(doc: BeautifulSoup) -> List[StudentSchema]:
    """Parse every ``div.bloglistTitle`` tile of a search result page."""
    students: List[StudentSchema] = []
    for tile in doc.select("div.bloglistTitle"):
        link = tile.find("a")
        if link is None or not link.get("href"):
            continue
        student_id = link["href"].rstrip().split("/")[-1]
        if not student_id:
            continue
        students.append(
            StudentSchema(
                id=student_id,
                name=link.get_text().strip(),
                year=extract_year(student_id),
                department=derive_department(student_id),
            )
        )
    return students


async def scrape_students(
    client: ScraperClient,
    year: int,
    dept_code: str,
    degree_prefix: str = DEGREE_PREFIX_BACHELOR,
) -> AsyncIterator[StudentSchema]:
    """Yield every student of ``year`` × ``dept_code``, page by page.

    逐页请求并按文档顺序产出；任一页失败即抛出。

    Args:
        client: Shared scraper client.
        year: ROC enrolment year (e.g. 112).
        dept_code: Department code (e.g. ``"85"`` or ``"742"``).
        degree_prefix: First digit of the id (``"4"`` for bachelor).
    """
    lms = client.domain(DOMAIN)
    keyword = f"{degree_prefix}{year}{dept_code}"

    doc = await lms.get_document(build_search_path(keyword, 1))
    total_pages = parse_max_page(doc)
    for student in parse_students(doc):
        yield student

    for page in range(2, total_pages + 1):
        doc = await lms.get_document(build_search_path(keyword, page))
        for student in parse_students(doc):
            yield student

    logger.debug("Scraped keyword %s (%d pages)", keyword, total_pages)


async def scrape_student_by_id(client: ScraperClient, student_id: str) -> Optional[StudentSchema]:
    """Look up a single student; None when the search page has no named tile."""
    doc = await client.domain(DOMAIN).get_document(build_search_path(student_id, 1))
    for tile in doc.select("div.bloglistTitle"):
        link = tile.find("a")
        name = link.get_text().strip() if link is not None else ""
        if not name:
            continue
        return StudentSchema(
            id=student_id,
            name=name,
            year=extract_year(student_id),
            department=derive_department(student_id),
        )
    return None

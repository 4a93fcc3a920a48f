# =============================================================================
# 模块: apps/scraper/ntpu/course.py
# 功能: 课程查询爬虫（SEA 课程查询系统）
# 架构角色: 爬虫适配器之一，输出 CourseSchema 序列。四种查询方式：
#   1. 按课程 UID：GET queryByKeyword，courseno={no}
#   2. 按课名：POST queryByAllConditions，cour=<Big5 URL 编码>
#   3. 按教师：POST queryByAllConditions，teach=<Big5 URL 编码>
#   4. 通用（预热用）：依次以 U/M/N/P 学制代码 GET queryByKeyword
#
# 页面结构（tbody 每行至少 14 个单元格）:
#   2 学期 | 3 课号 | 5 应修系级 | 6 必选修别 | 7 课名/备注 | 8 教师 | 13 时间地点
#   term=0 时请求省略 qTerm，学期从每行第 2 栏读取。
# =============================================================================
"""Course query adapter."""

from __future__ import annotations

import asyncio
import html
import logging
import re
from typing import AsyncIterator, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from common import big5
from common.errors import InvalidInputError
from common.http import ScraperClient
from core.schemas import (
    COURSE_TYPE_ELECTIVE,
    COURSE_TYPE_REQUIRED,
    CourseSchema,
    ProgramRequirementSchema,
    format_course_uid,
)

logger = logging.getLogger(__name__)

DOMAIN = "sea"
QUERY_BY_KEYWORD_PATH = "/pls/dev_stud/course_query_all.queryByKeyword"
QUERY_BY_ALL_CONDITIONS_PATH = "/pls/dev_stud/course_query_all.queryByAllConditions"

# 面向用户的链接使用域名
SEA_USER_FACING_URL = "https://sea.cc.ntpu.edu.tw"
DETAIL_URL_PREFIX = SEA_USER_FACING_URL + "/pls/dev_stud/course_query.queryguide"
TEACHER_URL_PREFIX = SEA_USER_FACING_URL + "/pls/faculty/tec_course_table.s_table?"

# 学制代码：U 大学部 / M 硕士班 / N 硕士在职专班 / P 博士班
EDUCATION_CODES = ("U", "M", "N", "P")

MIN_CELLS = 14
NOTE_PREFIX = "備註："
UNMAINTAINED_MARKER = "每週未維護"
PROGRAM_SUFFIX = "學程"

_CLASSROOM_RE = re.compile(r"(?:教室|上課地點)[:：為](.*?)(?:$|[ .，。；【])")
_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")
_SPACES_RE = re.compile(r"\s+")


def parse_course_uid(uid: str) -> Tuple[int, int, str]:
    """Split a course uid into ``(year, term, no)``.

    9 位以上为 3 位学年（如 1131U0001），否则为 2 位学年。

    Raises:
        InvalidInputError: ``uid`` is shorter than five characters or malformed.
    """
    if len(uid) < 5:
        raise InvalidInputError(f"invalid course uid: {uid!r}")
    if len(uid) >= 9:
        year, term, no = uid[:3], uid[3:4], uid[4:]
    else:
        year, term, no = uid[:2], uid[2:3], uid[3:]
    try:
        return int(year), int(term), no
    except ValueError:
        raise InvalidInputError(f"invalid course uid: {uid!r}") from None


# =============================================================================
# 解析
# =============================================================================
def _split_br(cell: Tag) -> List[str]:
    parts = _BR_RE.split(cell.decode_contents())
    return [p.strip() for p in parts if p.strip()]


def _clean_major_name(value: str) -> str:
    value = html.unescape(_TAG_RE.sub("", value))
    value = value.replace("\u00a0", "")
    for token in ("有擋修", "有限制"):
        value = value.replace(token, "")
    return value.strip()


def _clean_course_type(value: str) -> str:
    value = _TAG_RE.sub("", value).strip()
    if COURSE_TYPE_REQUIRED in value:
        return COURSE_TYPE_REQUIRED
    if COURSE_TYPE_ELECTIVE in value:
        return COURSE_TYPE_ELECTIVE
    return ""


def parse_program_requirements(major_cell: Tag, type_cell: Tag) -> List[ProgramRequirementSchema]:
    """Pair ``<br>``-separated items of fields 5 and 6, keeping programs only."""
    majors = _split_br(major_cell)
    types = _split_br(type_cell)
    requirements: List[ProgramRequirementSchema] = []
    for index, raw in enumerate(majors):
        name = _clean_major_name(raw)
        if not name.endswith(PROGRAM_SUFFIX):
            continue
        course_type = _clean_course_type(types[index]) if index < len(types) else ""
        requirements.append(
            ProgramRequirementSchema(
                program_name=name,
                course_type=course_type or COURSE_TYPE_ELECTIVE,
            )
        )
    return requirements


def _parse_title(cell: Tag) -> Tuple[str, str, str, str]:
    title = ""
    detail_url = ""
    link = cell.find("a")
    if link is not None:
        title = link.get_text().strip()
        href = link.get("href", "")
        if "?" in href:
            detail_url = f"{DETAIL_URL_PREFIX}?{href.split('?', 1)[1]}&show_info=all"

    note = ""
    location = ""
    font = cell.find("font")
    if font is not None:
        text = font.get_text()
        if text.startswith(NOTE_PREFIX):
            note = text[len(NOTE_PREFIX):].strip()
            match = _CLASSROOM_RE.search(note)
            if match:
                location = _SPACES_RE.sub(" ", match.group(1)).strip()
    return title, detail_url, note, location


def _parse_teachers(cell: Tag) -> Tuple[List[str], List[str]]:
    teachers: List[str] = []
    urls: List[str] = []
    for link in cell.find_all("a"):
        teachers.append(link.get_text().strip())
        href = link.get("href", "")
        query = href.split("?", 1)[1] if "?" in href else ""
        urls.append(TEACHER_URL_PREFIX + query if query else "")
    return teachers, urls


def _parse_times(cell: Tag) -> Tuple[List[str], List[str]]:
    times: List[str] = []
    locations: List[str] = []
    for link in cell.find_all("a"):
        info = link.get_text().strip()
        if UNMAINTAINED_MARKER in info:
            continue
        parts = info.split("\t", 1)
        times.append(parts[0].strip())
        if len(parts) > 1:
            locations.append(parts[1].strip())
    return times, locations


def _row_term(cell: Tag) -> int:
    try:
        term = int(cell.get_text().strip())
    except ValueError:
        return 1
    return term if term > 0 else 1


def parse_courses(doc: BeautifulSoup, year: int, term: int) -> List[CourseSchema]:
    """Parse the result table of a course query page.

    term 为 0 时逐行读取学期栏；无课名的行直接跳过。

    Args:
        doc: Parsed result page.
        year: Queried ROC year.
        term: Queried term, or 0 for both terms.

    Returns:
        List[CourseSchema]: Courses in document order.
    """
    # 结果页前面可能有版面/导航表格，逐个表格找课程行
    rows = doc.select("table tbody tr") or doc.select("table tr")

    courses: List[CourseSchema] = []
    for tr in rows:
        tds = tr.find_all("td", recursive=False)
        if len(tds) < MIN_CELLS:
            continue

        row_term = _row_term(tds[2]) if term == 0 else term
        no = tds[3].get_text().strip()

        title, detail_url, note, note_location = _parse_title(tds[7])
        if not title:
            logger.debug("Skipping course with empty title (year=%s, term=%s, no=%s)", year, term, no)
            continue

        teachers, teacher_urls = _parse_teachers(tds[8])
        times, locations = _parse_times(tds[13])
        if note_location:
            locations.append(note_location)

        courses.append(
            CourseSchema(
                uid=format_course_uid(year, row_term, no),
                year=year,
                term=row_term,
                no=no,
                title=title,
                teachers=teachers,
                teacher_urls=teacher_urls,
                times=times,
                locations=locations,
                detail_url=detail_url,
                note=note,
                programs=parse_program_requirements(tds[5], tds[6]),
            )
        )
    return courses


# =============================================================================
# 抓取
# =============================================================================
def _term_params(year: int, term: int) -> str:
    # term=0 省略 qTerm，一次查询上下学期
    if term == 0:
        return f"qYear={year}"
    return f"qYear={year}&qTerm={term}"


def build_condition_form(year: int, term: int, field: str, value: str) -> str:
    """Raw form body for the all-conditions endpoint (Big5 URL-encoded value)."""
    return f"{_term_params(year, term)}&{field}={big5.encode_query(value)}&seq1=A&seq2=M"


async def scrape_course_by_uid(client: ScraperClient, uid: str) -> Optional[CourseSchema]:
    """Fetch a single course; None when the result page has no matching row."""
    year, term, no = parse_course_uid(uid)
    path = f"{QUERY_BY_KEYWORD_PATH}?qYear={year}&qTerm={term}&courseno={no}&seq1=A&seq2=M"
    doc = await client.domain(DOMAIN).get_document(path)
    courses = parse_courses(doc, year, term)
    return courses[0] if courses else None


async def scrape_courses_by_title(
    client: ScraperClient, year: int, term: int, title: str
) -> AsyncIterator[CourseSchema]:
    """Yield courses whose title matches ``title`` in the given semester."""
    body = build_condition_form(year, term, "cour", title)
    doc = await client.domain(DOMAIN).post_form_document_raw(QUERY_BY_ALL_CONDITIONS_PATH, body)
    for course in parse_courses(doc, year, term):
        yield course


async def scrape_courses_by_teacher(
    client: ScraperClient, year: int, term: int, teacher: str
) -> AsyncIterator[CourseSchema]:
    """Yield courses taught by ``teacher`` in the given semester."""
    body = build_condition_form(year, term, "teach", teacher)
    doc = await client.domain(DOMAIN).post_form_document_raw(QUERY_BY_ALL_CONDITIONS_PATH, body)
    for course in parse_courses(doc, year, term):
        yield course


async def scrape_courses(client: ScraperClient, year: int, term: int) -> AsyncIterator[CourseSchema]:
    """Yield every course of a semester, one education code at a time.

    单个学制代码失败时记录并继续；全部无结果且有错误时抛出最后一个错误。
    """
    sea = client.domain(DOMAIN)
    params = f"{_term_params(year, term)}&seq1=A&seq2=M"

    found = 0
    last_error: Optional[BaseException] = None
    for code in EDUCATION_CODES:
        try:
            doc = await sea.get_document(f"{QUERY_BY_KEYWORD_PATH}?{params}&courseno={code}")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Course query %s/%s courseno=%s failed: %s", year, term, code, exc)
            last_error = exc
            continue
        for course in parse_courses(doc, year, term):
            found += 1
            yield course

    if found == 0 and last_error is not None:
        raise last_error


async def probe_courses_exist(client: ScraperClient, year: int, term: int) -> bool:
    """Return True if the undergraduate listing of a semester has any course."""
    path = f"{QUERY_BY_KEYWORD_PATH}?{_term_params(year, term)}&seq1=A&seq2=M&courseno=U"
    doc = await client.domain(DOMAIN).get_document(path)
    return bool(parse_courses(doc, year, term))

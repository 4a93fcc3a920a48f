# =============================================================================
# 模块: apps/scraper/ntpu/program.py
# 功能: 学程清单爬虫（LMS 学程公告文件夹）
# 架构角色: 爬虫适配器之一，输出 ProgramSchema 序列，供学程 -> 课程查询使用。
#   - 固定的文件夹列表，每个文件夹对应一个学程类别
#   - 每个文件夹分页（出现 Next / 下一頁 链接即有下一页），最多 10 页
#   - 按文件 cid 去重，剔除名称含「廢止」的学程
#   - 名称规范化：截断到第一个「學程」，补全为「學分學程」，再套用别名表
# =============================================================================
"""Program listing adapter."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, List, NamedTuple, Optional, Set, Tuple
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup

from common.http import ScraperClient
from core.schemas import ProgramSchema

logger = logging.getLogger(__name__)

DOMAIN = "lms"
LMS_COURSE_ID = "28286"
MAX_PAGES = 10

# 面向用户的链接使用域名
LMS_USER_FACING_URL = "https://lms.ntpu.edu.tw"

PROGRAM_MARKER = "學程"
DISCONTINUED_MARKER = "廢止"


class ProgramFolder(NamedTuple):
    id: str
    category: str


PROGRAM_FOLDERS: Tuple[ProgramFolder, ...] = (
    ProgramFolder("115531", "碩士學分學程"),
    ProgramFolder("115532", "學士學分學程"),
    ProgramFolder("115533", "學士暨碩士學分學程"),
    ProgramFolder("198807", "碩士跨域微學程"),
    ProgramFolder("198808", "學士跨域微學程"),
    ProgramFolder("198809", "學士暨碩士跨域微學程"),
    ProgramFolder("198811", "碩士單一領域微學程"),
    ProgramFolder("198812", "學士單一領域微學程"),
)

# 课程系统简称 -> 学程官方名称
PROGRAM_ALIASES = {
    "英語商學碩士學分學程": "英語授課商學碩士學分學程",
    "英語商學學士學分學程": "英語授課商學學士學分學程",
    "人工智慧英語學士學分學程": "人工智慧英語授課學士學分學程",
    "人工智慧英語學士微學程": "人工智慧英語授課學士微學程",
    "鑑識學分學程": "資本市場鑑識學分學程",
}


def normalize_program_name(name: str) -> str:
    """Strip trailing annotations and map abbreviated names to official ones.

    >>> normalize_program_name("英語商學碩士學程(112-1更名)")
    '英語授課商學碩士學分學程'
    """
    index = name.find(PROGRAM_MARKER)
    if index >= 0:
        name = name[: index + len(PROGRAM_MARKER)]
    name = name.strip()

    if (
        name.endswith(PROGRAM_MARKER)
        and not name.endswith("學分學程")
        and not name.endswith("微學程")
    ):
        name = name[: -len(PROGRAM_MARKER)] + "學分學程"

    return PROGRAM_ALIASES.get(name, name)


def build_folder_path(folder_id: str, page: int = 1) -> str:
    path = f"/board.php?courseID={LMS_COURSE_ID}&f=doclist&folderID={folder_id}"
    if page > 1:
        path += f"&page={page}"
    return path


def _absolute_url(href: str) -> str:
    if href.startswith("http"):
        return href
    if href.startswith("/"):
        return LMS_USER_FACING_URL + href
    return LMS_USER_FACING_URL + "/" + href


def parse_program_page(
    doc: BeautifulSoup, category: str, seen: Set[str]
) -> Tuple[List[ProgramSchema], bool]:
    """Extract programs from one folder page.

    Args:
        doc: Parsed folder page.
        category: Category of the folder.
        seen: Document ids already emitted; updated in place.

    Returns:
        (programs, has_next)
    """
    programs: List[ProgramSchema] = []
    has_next = False
    for anchor in doc.find_all("a", href=True):
        text = anchor.get_text().strip()
        if text in ("Next", "下一頁"):
            has_next = True
            continue

        query = parse_qs(urlparse(anchor["href"]).query)
        if query.get("f", [""])[0] != "doc":
            continue
        cid = query.get("cid", [""])[0]
        if not cid or cid in seen:
            continue
        if not text or PROGRAM_MARKER not in text or DISCONTINUED_MARKER in text:
            continue

        seen.add(cid)
        programs.append(
            ProgramSchema(
                name=normalize_program_name(text),
                category=category,
                url=_absolute_url(anchor["href"]),
            )
        )
    return programs, has_next


async def scrape_program_folder(
    client: ScraperClient, folder: ProgramFolder, seen: Optional[Set[str]] = None
) -> AsyncIterator[ProgramSchema]:
    """Yield the programs of one folder, following pagination.

    第一页失败即抛出；后续页失败视为已到末页。
    """
    lms = client.domain(DOMAIN)
    seen = set() if seen is None else seen
    for page in range(1, MAX_PAGES + 1):
        try:
            doc = await lms.get_document(build_folder_path(folder.id, page))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if page == 1:
                raise
            logger.debug("Stopping folder %s at page %d: %s", folder.id, page, exc)
            break

        programs, has_next = parse_program_page(doc, folder.category, seen)
        for program in programs:
            yield program
        if not has_next or not programs:
            break


async def scrape_programs(client: ScraperClient) -> AsyncIterator[ProgramSchema]:
    """Yield programs from every folder; failed folders are logged and skipped."""
    seen: Set[str] = set()
    for folder in PROGRAM_FOLDERS:
        try:
            async for program in scrape_program_folder(client, folder, seen):
                yield program
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Failed to scrape program folder %s (%s): %s", folder.id, folder.category, exc)

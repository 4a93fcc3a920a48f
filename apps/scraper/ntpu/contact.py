# =============================================================================
# 模块: apps/scraper/ntpu/contact.py
# 功能: 校园通讯录爬虫（SEA 校园电话簿）
# 架构角色: 爬虫适配器之一，输出 ContactSchema 序列（单位 + 成员）。
#   - 关键字搜索：查询词先编码为 Big5 再做 URL 编码
#   - 行政 / 学术两个入口页列出各单位链接，逐个跟进
#
# 页面结构:
#   每个单位区块为一个 div.alert 横幅（上级单位、名称、地点、网站），
#   紧随其后的 w100 兄弟元素内是成员表格（姓名、英文名、职称、分机、邮箱）。
#   邮箱中的 "@" 以 <img> 呈现，需按文本节点与图片顺序拼接还原。
# =============================================================================
"""Campus directory adapter."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, List

from bs4 import BeautifulSoup, NavigableString, Tag

from common import big5
from common.errors import EncodingError, ScraperError
from common.http import ScraperClient
from core.schemas import (
    CONTACT_TYPE_INDIVIDUAL,
    CONTACT_TYPE_ORGANIZATION,
    ContactSchema,
)

logger = logging.getLogger(__name__)

DOMAIN = "sea"
SEARCH_PATH = "/pls/ld/CAMPUS_DIR_M.pq?q="
ADMINISTRATIVE_PATH = "/pls/ld/CAMPUS_DIR_M.p1?kind=1"
ACADEMIC_PATH = "/pls/ld/CAMPUS_DIR_M.p1?kind=2"
LISTING_PREFIX = "/pls/ld/"

# 面向用户的链接使用域名
SEA_USER_FACING_URL = "https://sea.cc.ntpu.edu.tw"

# 学校总机
CAMPUS_PHONE = "0286741111"


def build_contact_search_url(term: str) -> str:
    """User-facing search URL for ``term``; empty when it is not Big5-encodable."""
    try:
        return SEA_USER_FACING_URL + SEARCH_PATH + big5.encode_query(term)
    except EncodingError:
        return ""


def build_phone(extension: str) -> str:
    """``{campus},{first five digits}`` for extensions of at least five digits."""
    if len(extension) >= 5:
        return f"{CAMPUS_PHONE},{extension[:5]}"
    return ""


def _text(node) -> str:
    return node.get_text().strip() if node is not None else ""


def _email(cell: Tag) -> str:
    parts: List[str] = []
    for span in cell.find_all("span"):
        for child in span.children:
            if isinstance(child, NavigableString):
                parts.append(str(child))
            elif isinstance(child, Tag) and child.name == "img":
                parts.append("@")
    return "".join(parts).strip()


def _members(table: Tag, organization: str) -> List[ContactSchema]:
    rows = table.select("tbody tr") or table.select("tr")
    members: List[ContactSchema] = []
    for tr in rows:
        tds = tr.find_all("td", recursive=False)
        if len(tds) < 5:
            continue

        name_cell = tds[0]
        zh = name_cell.select("span.lang-zh-Hant")
        if zh:
            name = "".join(s.get_text() for s in zh).strip()
        else:
            name = _text(name_cell.find("span"))
        if not name:
            continue

        extension = _text(tds[2].find("span"))
        members.append(
            ContactSchema(
                uid=f"{CONTACT_TYPE_INDIVIDUAL}_{name}_{organization}",
                type=CONTACT_TYPE_INDIVIDUAL,
                name=name,
                name_en="".join(s.get_text() for s in name_cell.select("span.lang-en")).strip(),
                organization=organization,
                title=_text(tds[1]),
                extension=extension,
                phone=build_phone(extension),
                email=_email(tds[4]),
            )
        )
    return members


def parse_contacts(doc: BeautifulSoup) -> List[ContactSchema]:
    """Parse every organisation section (and its members) in document order."""
    contacts: List[ContactSchema] = []
    for section in doc.select("div.alert.alert-info.mt-0.mb-0"):
        links = section.select("a.lang.lang-zh-Hant.mx-2")
        superior = ""
        if len(links) >= 2:
            superior = _text(links[0])
            name = _text(links[1])
        elif links:
            name = _text(links[0])
        else:
            name = ""
        if not name:
            continue

        location = ""
        website = ""
        for index, item in enumerate(section.find_all("li")):
            if index == 2:
                text = item.get_text()
                if "：" in text:
                    location = text.split("：", 1)[1].strip()
            elif index == 3:
                website = _text(item.find("a"))

        contacts.append(
            ContactSchema(
                uid=f"org_{name}",
                type=CONTACT_TYPE_ORGANIZATION,
                name=name,
                location=location,
                website=website,
                superior=superior,
            )
        )

        table = section.find_next_sibling()
        if table is not None and "w100" in (table.get("class") or []):
            contacts.extend(_members(table, name))
    return contacts


def parse_listing_links(doc: BeautifulSoup) -> List[str]:
    """Organisation page hrefs listed on an administrative/academic entry page."""
    links: List[str] = []
    for anchor in doc.select("div.card-header a[href]"):
        href = anchor["href"].strip()
        if href:
            links.append(href)
    return links


async def scrape_contacts(client: ScraperClient, term: str) -> AsyncIterator[ContactSchema]:
    """Yield contacts matching ``term``.

    Raises:
        EncodingError: ``term`` has no Big5 representation (permanent).
    """
    query = big5.encode_query(term)
    doc = await client.domain(DOMAIN).get_document(SEARCH_PATH + query)
    for contact in parse_contacts(doc):
        yield contact


async def _scrape_listing(client: ScraperClient, entry_path: str) -> AsyncIterator[ContactSchema]:
    sea = client.domain(DOMAIN)
    doc = await sea.get_document(entry_path)
    links = parse_listing_links(doc)

    collected = 0
    errors: List[BaseException] = []
    for href in links:
        try:
            page = await sea.get_document(LISTING_PREFIX + href.lstrip("/"))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Failed to fetch directory page %s: %s", href, exc)
            errors.append(exc)
            continue
        for contact in parse_contacts(page):
            collected += 1
            yield contact

    if collected == 0 and errors:
        raise ScraperError(
            f"all {len(errors)} directory pages of {entry_path} failed: {errors[-1]}"
        ) from errors[-1]
    logger.info(
        "Directory %s: %d contacts from %d pages (%d failed)",
        entry_path, collected, len(links), len(errors),
    )


def scrape_administrative_contacts(client: ScraperClient) -> AsyncIterator[ContactSchema]:
    """Yield contacts of every administrative unit."""
    return _scrape_listing(client, ADMINISTRATIVE_PATH)


def scrape_academic_contacts(client: ScraperClient) -> AsyncIterator[ContactSchema]:
    """Yield contacts of every academic unit."""
    return _scrape_listing(client, ACADEMIC_PATH)

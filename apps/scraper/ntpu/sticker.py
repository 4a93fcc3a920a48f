# =============================================================================
# 模块: apps/scraper/ntpu/sticker.py
# 功能: 头像贴图来源爬虫
# 架构角色: 爬虫适配器之一，输出 StickerSchema 序列。
#   - SPY×FAMILY 官网特典页：ul.icondlLists 下以 .png 结尾的下载链接
#   - 【推しの子】官网特典页：core_sys/images/contents/ 下的 .jpg 图片
#   - 所有来源都失败时，使用 ui-avatars 生成的固定头像作为兜底
# =============================================================================
"""Avatar sticker adapter."""

from __future__ import annotations

import logging
from typing import AsyncIterator, List, NamedTuple, Tuple

from bs4 import BeautifulSoup

from common.errors import ParseError
from common.http import ScraperClient
from core.schemas import StickerSchema

logger = logging.getLogger(__name__)

SOURCE_SPY_FAMILY = "spy_family"
SOURCE_ICHIGO = "ichigo"
SOURCE_FALLBACK = "fallback"

SPY_FAMILY_BASE = "https://spy-family.net/tvseries/"
ICHIGO_BASE = "https://ichigoproduction.com/Season1/"


class StickerPage(NamedTuple):
    url: str
    source: str


STICKER_PAGES: Tuple[StickerPage, ...] = (
    StickerPage(SPY_FAMILY_BASE + "special/special1_season1.php", SOURCE_SPY_FAMILY),
    StickerPage(SPY_FAMILY_BASE + "special/special2_season1.php", SOURCE_SPY_FAMILY),
    StickerPage(SPY_FAMILY_BASE + "special/special9_season1.php", SOURCE_SPY_FAMILY),
    StickerPage(SPY_FAMILY_BASE + "special/special13_season1.php", SOURCE_SPY_FAMILY),
    StickerPage(SPY_FAMILY_BASE + "special/special16_season1.php", SOURCE_SPY_FAMILY),
    StickerPage(SPY_FAMILY_BASE + "special/special17_season1.php", SOURCE_SPY_FAMILY),
    StickerPage(SPY_FAMILY_BASE + "special/special3_season2.php", SOURCE_SPY_FAMILY),
    StickerPage(SPY_FAMILY_BASE + "special/special10.php", SOURCE_SPY_FAMILY),
    StickerPage(ICHIGO_BASE + "special/present_icon.html", SOURCE_ICHIGO),
)

FALLBACK_NAMES = (
    "Anya", "Loid", "Yor", "Bond", "Damian",
    "Becky", "Fiona", "Franky", "Yuri", "Sylvia",
    "Ichigo", "Ai", "Kana", "Aqua", "Ruby",
    "Miyako", "Mem", "Akane", "Taiki", "Sarina",
)
FALLBACK_BACKGROUNDS = ("FF6B6B", "4ECDC4", "45B7D1", "FFA07A", "98D8C8")
FALLBACK_URL = "https://ui-avatars.com/api/?name={name}&size=256&background={bg}&color=fff"


def _absolute(link: str, base: str) -> str:
    if link.startswith("../"):
        return base + link[3:]
    if link.startswith("http"):
        return link
    if link.startswith("//"):
        return "https:" + link
    return ""


def parse_spy_family(doc: BeautifulSoup) -> List[str]:
    urls = []
    for anchor in doc.select("ul.icondlLists a[href$='.png']"):
        url = _absolute(anchor.get("href", ""), SPY_FAMILY_BASE)
        if url:
            urls.append(url)
    return urls


def parse_ichigo(doc: BeautifulSoup) -> List[str]:
    urls = []
    for img in doc.find_all("img", src=True):
        src = img["src"]
        if "core_sys/images/contents/" not in src or ".jpg" not in src:
            continue
        url = _absolute(src, ICHIGO_BASE)
        if url:
            urls.append(url)
    return urls


_PARSERS = {
    SOURCE_SPY_FAMILY: parse_spy_family,
    SOURCE_ICHIGO: parse_ichigo,
}


async def scrape_sticker_page(client: ScraperClient, page: StickerPage) -> AsyncIterator[StickerSchema]:
    """Yield the stickers of one source page.

    Raises:
        ParseError: The page contained no sticker links.
    """
    doc = await client.get_document(page.url)
    urls = _PARSERS[page.source](doc)
    if not urls:
        raise ParseError(f"no stickers found on {page.url}")
    for url in urls:
        yield StickerSchema(url=url, source=page.source)


def fallback_stickers() -> List[StickerSchema]:
    """Generated avatars used when every source page fails."""
    return [
        StickerSchema(
            url=FALLBACK_URL.format(name=name, bg=FALLBACK_BACKGROUNDS[i % len(FALLBACK_BACKGROUNDS)]),
            source=SOURCE_FALLBACK,
        )
        for i, name in enumerate(FALLBACK_NAMES)
    ]

"""Tests for apps/scraper/ntpu/sticker.py."""

from __future__ import annotations

import pytest

from apps.scraper import collect
from apps.scraper.ntpu import sticker
from common.errors import ParseError
from common.http import parse_html
from pages import html_response

SPY_PAGE = """
<html><body>
<ul class="icondlLists">
  <li><a href="../assets/img/special/anya.png">DL</a></li>
  <li><a href="https://spy-family.net/tvseries/assets/img/special/loid.png">DL</a></li>
  <li><a href="../assets/img/special/readme.txt">DL</a></li>
</ul>
<a href="../assets/img/other.png">outside list</a>
</body></html>
"""

ICHIGO_PAGE = """
<html><body>
<img src="../core_sys/images/contents/00000012/block/00000034/00000056.jpg">
<img src="//ichigoproduction.com/core_sys/images/contents/00000012/block/00000034/00000057.jpg">
<img src="../images/logo.jpg">
</body></html>
"""


def test_parse_spy_family_keeps_listed_png_links():
    assert sticker.parse_spy_family(parse_html(SPY_PAGE)) == [
        "https://spy-family.net/tvseries/assets/img/special/anya.png",
        "https://spy-family.net/tvseries/assets/img/special/loid.png",
    ]


def test_parse_ichigo_keeps_content_images():
    assert sticker.parse_ichigo(parse_html(ICHIGO_PAGE)) == [
        "https://ichigoproduction.com/Season1/core_sys/images/contents/00000012/block/00000034/00000056.jpg",
        "https://ichigoproduction.com/core_sys/images/contents/00000012/block/00000034/00000057.jpg",
    ]


def test_fallback_stickers():
    stickers = sticker.fallback_stickers()
    assert len(stickers) == 20
    assert len({s.url for s in stickers}) == 20
    assert all(s.source == "fallback" for s in stickers)
    assert stickers[0].url.startswith("https://ui-avatars.com/api/?name=Anya")


def test_sticker_pages_cover_both_sources():
    sources = [page.source for page in sticker.STICKER_PAGES]
    assert sources.count("spy_family") == 8
    assert sources.count("ichigo") == 1


@pytest.mark.asyncio
async def test_scrape_sticker_page(make_client):
    client = make_client(lambda request: html_response(SPY_PAGE))
    stickers = await collect(sticker.scrape_sticker_page(client, sticker.STICKER_PAGES[0]))
    assert [s.source for s in stickers] == ["spy_family", "spy_family"]


@pytest.mark.asyncio
async def test_empty_sticker_page_is_a_parse_error(make_client):
    client = make_client(lambda request: html_response("<html><body></body></html>"))
    with pytest.raises(ParseError):
        await collect(sticker.scrape_sticker_page(client, sticker.STICKER_PAGES[-1]))

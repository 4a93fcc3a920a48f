"""Tests for apps/scraper/ntpu/program.py."""

from __future__ import annotations

import pytest

from apps.scraper import collect
from apps.scraper.ntpu import program
from common.http import parse_html
from pages import html_response, program_page


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("英語商學碩士學程(112-1更名)", "英語授課商學碩士學分學程"),
        ("資料科學學分學程", "資料科學學分學程"),
        ("金融科技跨域微學程 公告", "金融科技跨域微學程"),
        ("鑑識學程", "資本市場鑑識學分學程"),
        ("  永續發展學程  ", "永續發展學分學程"),
    ],
)
def test_normalize_program_name(raw, expected):
    assert program.normalize_program_name(raw) == expected


def test_parse_program_page_filters_and_dedups():
    doc = parse_html(program_page([
        ("1", "資料科學學分學程"),
        ("2", "海洋政策學程(已廢止)"),
        ("3", "招生簡章"),
        ("1", "資料科學學分學程"),
    ], has_next=True))
    seen = set()

    programs, has_next = program.parse_program_page(doc, "學士學分學程", seen)

    assert [p.name for p in programs] == ["資料科學學分學程"]
    assert programs[0].category == "學士學分學程"
    assert programs[0].url == "https://lms.ntpu.edu.tw/board.php?courseID=28286&f=doc&cid=1"
    assert has_next is True
    assert seen == {"1"}


def test_build_folder_path():
    assert program.build_folder_path("115531") == "/board.php?courseID=28286&f=doclist&folderID=115531"
    assert program.build_folder_path("115531", 3).endswith("&page=3")


@pytest.mark.asyncio
async def test_scrape_folder_follows_pagination(make_client):
    pages = {
        "1": program_page([("1", "資料科學學分學程")], has_next=True),
        "2": program_page([("2", "金融科技學分學程")], has_next=False),
    }
    requested = []

    def handler(request):
        if request.method == "HEAD":
            return html_response("")
        page = request.url.params.get("page", "1")
        requested.append(page)
        return html_response(pages[page])

    client = make_client(handler)
    folder = program.PROGRAM_FOLDERS[0]
    programs = await collect(program.scrape_program_folder(client, folder))

    assert requested == ["1", "2"]
    assert [p.name for p in programs] == ["資料科學學分學程", "金融科技學分學程"]
    assert all(p.category == folder.category for p in programs)


@pytest.mark.asyncio
async def test_later_page_failure_ends_folder(make_client):
    def handler(request):
        if request.method == "HEAD":
            return html_response("")
        if request.url.params.get("page") == "2":
            return html_response("", status_code=404)
        return html_response(program_page([("1", "資料科學學分學程")], has_next=True))

    client = make_client(handler)
    programs = await collect(program.scrape_program_folder(client, program.PROGRAM_FOLDERS[0]))
    assert [p.name for p in programs] == ["資料科學學分學程"]


@pytest.mark.asyncio
async def test_scrape_programs_skips_failed_folders_and_dedups(make_client):
    failing = program.PROGRAM_FOLDERS[1].id

    def handler(request):
        if request.method == "HEAD":
            return html_response("")
        if request.url.params["folderID"] == failing:
            return html_response("", status_code=403)
        # 每个文件夹都列出同一份文件
        return html_response(program_page([("7", "資料科學學分學程")]))

    client = make_client(handler)
    programs = await collect(program.scrape_programs(client))

    assert len(programs) == 1
    assert programs[0].category == program.PROGRAM_FOLDERS[0].category

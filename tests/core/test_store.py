"""Tests for core/store.py: TTL, upsert, search, purge.

使用可调时钟控制 cached_at，无需真实等待即可验证过期逻辑。
"""

from __future__ import annotations

import pytest
import pytest_asyncio

from common.errors import InvalidInputError
from core.schemas import (
    ContactSchema,
    CourseSchema,
    ProgramRequirementSchema,
    ProgramSchema,
    StickerSchema,
    StudentSchema,
)
from core.store import MAX_STUDENT_RESULTS, CacheStore, contains_all_chars, escape_like

TTL = 3600


class Clock:
    def __init__(self, now: int = 1_700_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest_asyncio.fixture
async def ttl_store(engine, clock):
    return CacheStore(engine, ttl=TTL, historical_ttl=2 * TTL, clock=clock)


def course(year=113, term=1, no="U0001", title="程式設計", teachers=("王小明",), programs=()):
    return CourseSchema(
        uid=f"{year}{term}{no}",
        year=year,
        term=term,
        no=no,
        title=title,
        teachers=list(teachers),
        teacher_urls=["" for _ in teachers],
        programs=[ProgramRequirementSchema(program_name=p) for p in programs],
    )


def student(sid="411285678", name="王小明", year=112, department="資工系"):
    return StudentSchema(id=sid, name=name, year=year, department=department)


# ---------------------------------------------------------------------------
# 新鲜度
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_record_is_fresh_up_to_ttl(ttl_store, clock):
    await ttl_store.save_students([student()])

    clock.now += TTL
    assert (await ttl_store.get_student("411285678")) is not None

    clock.now += 1
    assert await ttl_store.get_student("411285678") is None


@pytest.mark.asyncio
async def test_resave_refreshes_cached_at(ttl_store, clock):
    await ttl_store.save_students([student(name="舊名")])
    clock.now += TTL
    await ttl_store.save_students([student(name="新名")])
    clock.now += TTL

    got = await ttl_store.get_student("411285678")
    assert got.name == "新名"
    assert got.cached_at == clock.now - TTL
    assert await ttl_store.count_students() == 1


@pytest.mark.asyncio
async def test_historical_courses_use_their_own_ttl(ttl_store, clock):
    await ttl_store.save_historical_courses([course(year=100, term=1)])
    clock.now += TTL + 1
    assert await ttl_store.get_historical_course("1001U0001") is not None
    # 历史课程与一般课程分表
    assert await ttl_store.get_course("1001U0001") is None

    clock.now += TTL
    assert await ttl_store.get_historical_course("1001U0001") is None


# ---------------------------------------------------------------------------
# 课程
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_course_round_trip_keeps_sequences(store):
    saved = course(teachers=("王小明", "李大華"), programs=("資料科學學程",))
    saved.times = ["每週二2~4"]
    saved.locations = ["電4F01"]
    await store.save_courses([saved])

    got = await store.get_course(saved.uid)
    assert got.teachers == ["王小明", "李大華"]
    assert got.times == ["每週二2~4"]
    assert got.programs[0].program_name == "資料科學學程"
    assert got.programs[0].course_type == "選"


@pytest.mark.asyncio
async def test_search_courses_by_title_orders_newest_first(store):
    await store.save_courses([
        course(year=112, term=2, no="U0001", title="程式設計"),
        course(year=113, term=1, no="U0002", title="進階程式設計"),
        course(year=113, term=1, no="U0003", title="微積分"),
    ])

    hits = await store.search_courses_by_title("程式設計")
    assert [c.uid for c in hits] == ["1131U0002", "1122U0001"]


@pytest.mark.asyncio
async def test_search_escapes_like_wildcards(store):
    await store.save_courses([
        course(no="U0001", title="100%英文"),
        course(no="U0002", title="英文"),
    ])
    hits = await store.search_courses_by_title("%英文")
    assert [c.title for c in hits] == ["100%英文"]

    assert await store.search_courses_by_title("_") == []


@pytest.mark.asyncio
async def test_search_courses_by_teacher(store):
    await store.save_courses([
        course(no="U0001", teachers=("王小明",)),
        course(no="U0002", teachers=("李大華", "王大同")),
        course(no="U0003", teachers=("陳一",)),
    ])
    hits = await store.search_courses_by_teacher("王")
    assert sorted(c.uid for c in hits) == ["1131U0001", "1131U0002"]


@pytest.mark.asyncio
async def test_search_term_too_long_is_rejected(store):
    with pytest.raises(InvalidInputError):
        await store.search_courses_by_title("x" * 101)
    # 恰好 100 个字符可以检索
    assert await store.search_courses_by_title("x" * 100) == []


@pytest.mark.asyncio
async def test_blank_search_term_returns_nothing(store):
    await store.save_courses([course()])
    assert await store.search_courses_by_title("   ") == []


@pytest.mark.asyncio
async def test_distinct_semesters_and_semester_lookup(store):
    await store.save_courses([
        course(year=111, term=2, no="U0001"),
        course(year=113, term=1, no="U0002"),
        course(year=112, term=2, no="U0003"),
        course(year=113, term=1, no="U0004"),
    ])
    assert await store.get_distinct_semesters(2) == [(113, 1), (112, 2)]

    courses = await store.get_courses_by_semesters([(113, 1), (111, 2)])
    assert [c.uid for c in courses] == ["1131U0002", "1131U0004", "1112U0001"]
    assert len(await store.get_courses_by_year_term(113, 1)) == 2


@pytest.mark.asyncio
async def test_program_courses_filter_by_program(store):
    await store.save_courses([
        course(no="U0001", programs=("資料科學學程",)),
        course(no="U0002", programs=("金融科技學程",)),
        course(year=111, no="U0003", programs=("資料科學學程",)),
    ])
    hits = await store.get_program_courses("資料科學學程", [(113, 1)])
    assert [c.uid for c in hits] == ["1131U0001"]


@pytest.mark.asyncio
async def test_historical_search_matches_all_chars(store):
    await store.save_historical_courses([
        course(year=100, term=1, no="U0001", title="線性代數"),
        course(year=100, term=2, no="U0002", title="代數導論"),
        course(year=101, term=1, no="U0003", title="線性代數"),
    ])
    hits = await store.search_historical_courses(100, "線代")
    assert [c.uid for c in hits] == ["1001U0001"]


# ---------------------------------------------------------------------------
# 学生与通讯录
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_student_name_search_is_capped(store):
    await store.save_students([
        student(sid=f"411285{n:03d}", name=f"王同學{n}") for n in range(MAX_STUDENT_RESULTS + 20)
    ])
    hits = await store.search_students_by_name("王同")
    assert len(hits) == MAX_STUDENT_RESULTS


@pytest.mark.asyncio
async def test_students_by_year_department(store):
    await store.save_students([
        student(sid="411285001", year=112, department="資工系"),
        student(sid="411185001", year=111, department="資工系"),
        student(sid="411273001", year=112, department="經濟系"),
    ])
    hits = await store.get_students_by_year_department(112, "資工系")
    assert [s.id for s in hits] == ["411285001"]


@pytest.mark.asyncio
async def test_search_contacts_lists_organizations_before_people(store):
    await store.save_contacts([
        ContactSchema(uid="individual_王小明_資訊中心", type="individual", name="王小明",
                      organization="資訊中心", title="組長"),
        ContactSchema(uid="org_資訊中心", type="organization", name="資訊中心"),
        ContactSchema(uid="org_圖書館", type="organization", name="圖書館"),
    ])
    hits = await store.search_contacts("資訊")
    assert [c.uid for c in hits] == ["org_資訊中心", "individual_王小明_資訊中心"]
    assert (await store.get_contact("org_圖書館")).name == "圖書館"


# ---------------------------------------------------------------------------
# 学程与贴图
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_programs_and_stickers(store):
    await store.save_programs([
        ProgramSchema(name="資料科學學程", category="跨領域"),
        ProgramSchema(name="金融科技學程", category="跨領域"),
    ])
    assert [p.name for p in await store.get_programs()] == ["資料科學學程", "金融科技學程"]

    await store.save_stickers([
        StickerSchema(url="http://img/1.png", source="spy_family"),
        StickerSchema(url="http://img/2.png", source="spy_family"),
        StickerSchema(url="http://img/3.png", source="ichigo"),
    ])
    # 同一 URL 再次写入只更新，不新增
    await store.save_stickers([StickerSchema(url="http://img/1.png", source="spy_family")])
    assert await store.sticker_stats() == {"spy_family": 2, "ichigo": 1}
    assert len(await store.get_stickers("ichigo")) == 1


# ---------------------------------------------------------------------------
# 维护
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_purge_all_empties_every_table(store):
    await store.save_students([student()])
    await store.save_courses([course()])
    await store.save_historical_courses([course(year=100)])
    await store.save_stickers([StickerSchema(url="u", source="fallback")])

    await store.purge_all()

    counts = await store.counts()
    assert set(counts.values()) == {0}
    assert len(counts) == 6


@pytest.mark.asyncio
async def test_purge_expired_removes_only_stale_rows(ttl_store, clock):
    await ttl_store.save_students([student(sid="411285001")])
    clock.now += TTL + 1
    await ttl_store.save_students([student(sid="411285002")])

    deleted = await ttl_store.purge_expired()
    assert deleted["students"] == 1
    assert await ttl_store.count_students() == 1


def test_escape_like():
    assert escape_like("50%_a\\b") == "50\\%\\_a\\\\b"


@pytest.mark.parametrize(
    "value, term, expected",
    [
        ("線性代數", "線代", True),
        ("線性代數", "代線", True),
        ("線性代數", "微積", False),
        ("線性代數", "  ", False),
    ],
)
def test_contains_all_chars(value, term, expected):
    assert contains_all_chars(value, term) is expected

"""Tests for apps/query/classifier.py."""

from __future__ import annotations

import pytest

from apps.query.classifier import Intent, IntentKind, classify


@pytest.mark.parametrize(
    "text, expected",
    [
        ("1131U0001", Intent(IntentKind.COURSE_UID, "1131U0001")),
        ("查 1131u0001 的課", Intent(IntentKind.COURSE_UID, "1131U0001")),
        ("992M1234", Intent(IntentKind.COURSE_UID, "992M1234")),
        ("u0001", Intent(IntentKind.COURSE_NO, "U0001")),
        ("課程 110 微積分", Intent(IntentKind.HISTORICAL_COURSE, "微積分", 110)),
        ("course 99 linear algebra", Intent(IntentKind.HISTORICAL_COURSE, "linear algebra", 99)),
        ("412345678", Intent(IntentKind.STUDENT_ID, "412345678")),
        ("41234567", Intent(IntentKind.STUDENT_ID, "41234567")),
        ("課程名稱 微積分", Intent(IntentKind.COURSE, "微積分")),
        ("課 程式設計", Intent(IntentKind.COURSE, "程式設計")),
        ("授課教師王小明", Intent(IntentKind.COURSE, "王小明")),
        ("Teacher Wang", Intent(IntentKind.COURSE, "Wang")),
        ("Dr Chen", Intent(IntentKind.COURSE, "Chen")),
        ("id 王小明", Intent(IntentKind.STUDENT, "王小明")),
        ("學生姓名 王小明", Intent(IntentKind.STUDENT, "王小明")),
        ("學生 王小明", Intent(IntentKind.STUDENT, "王小明")),
        ("聯絡方式 圖書館", Intent(IntentKind.CONTACT, "圖書館")),
        ("電話 資訊中心", Intent(IntentKind.CONTACT, "資訊中心")),
    ],
)
def test_classify(text, expected):
    assert classify(text) == expected


@pytest.mark.parametrize("text", ["", "   ", None])
def test_blank_text_is_unknown(text):
    assert classify(text).kind is IntentKind.UNKNOWN


@pytest.mark.parametrize("text", ["你好", "學號", "1234567", "課程"])
def test_unrecognised_text_is_unknown(text):
    assert classify(text).kind is IntentKind.UNKNOWN


@pytest.mark.parametrize("text", ["drawing class", "idea", "professorship", "touchdown"])
def test_english_keyword_must_be_a_whole_word(text):
    """英文关键字只匹配完整单词"""
    assert classify(text).kind is IntentKind.UNKNOWN

# =============================================================================
# 模块: apps/query/classifier.py
# 功能: 将用户输入文本分类为查询意图
# 架构角色: 查询服务的入口判定。按优先级依次匹配：
#   1. 完整课程 UID（如 1131U0001，可出现在句中）
#   2. 仅课号（如 U0001）
#   3. 历史课程「課程 {学年} {关键字}」
#   4. 学号（8 或 9 位数字）
#   5. 关键字前缀：课程/教师、学生姓名、通讯录
#
# 设计决策:
#   - 关键字只在文本开头匹配，按长度降序尝试，避免「課」抢先匹配「課程名稱」
#   - 英文关键字不区分大小写，且必须以非字母数字结尾；中文关键字可直接接查询词
# =============================================================================
"""Intent classification for raw query text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence


class IntentKind(str, Enum):
    COURSE_UID = "course_uid"
    COURSE_NO = "course_no"
    HISTORICAL_COURSE = "historical_course"
    COURSE = "course"
    STUDENT_ID = "student_id"
    STUDENT = "student"
    CONTACT = "contact"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Intent:
    kind: IntentKind
    term: str = ""
    year: Optional[int] = None


COURSE_KEYWORDS = (
    "課", "課程", "科目",
    "課名", "課程名", "課程名稱",
    "科目名", "科目名稱",
    "師", "老師", "教師", "教授",
    "老師名", "教師名", "教授名",
    "老師名稱", "教師名稱", "教授名稱",
    "授課教師", "授課老師", "授課教授",
    "class", "course",
    "teacher", "professor", "prof", "dr", "doctor",
)

STUDENT_KEYWORDS = (
    "學號", "學生", "姓名", "學生姓名", "學生編號",
    "student", "id",
)

CONTACT_KEYWORDS = (
    "聯繫", "聯絡", "聯繫方式", "聯絡方式",
    "連繫", "連絡",
    "電話", "分機", "email", "信箱",
    "touch", "contact", "connect",
)

_UID_RE = re.compile(r"\d{3,4}[UMNP]\d{4}", re.IGNORECASE)
_COURSE_NO_RE = re.compile(r"^[UMNP]\d{4}$", re.IGNORECASE)
_HISTORICAL_RE = re.compile(r"^(?:課程?|course|class)\s+(\d{2,3})\s+(.+)$", re.IGNORECASE)
_STUDENT_ID_RE = re.compile(r"^\d{8,9}$")


def _keyword_alternative(keyword: str) -> str:
    if keyword.isascii():
        return re.escape(keyword) + r"(?![a-z0-9])"
    return re.escape(keyword)


def _keyword_regex(keywords: Sequence[str]) -> "re.Pattern[str]":
    ordered = sorted(keywords, key=len, reverse=True)
    return re.compile(
        r"^(?:" + "|".join(_keyword_alternative(k) for k in ordered) + r")", re.IGNORECASE
    )


_COURSE_RE = _keyword_regex(COURSE_KEYWORDS)
_STUDENT_RE = _keyword_regex(STUDENT_KEYWORDS)
_CONTACT_RE = _keyword_regex(CONTACT_KEYWORDS)


def _after_keyword(pattern: "re.Pattern[str]", text: str) -> Optional[str]:
    match = pattern.match(text)
    if match is None:
        return None
    return text[match.end():].strip()


def classify(text: str) -> Intent:
    """Map raw user text to an :class:`Intent`.

    >>> classify("1131u0001")
    Intent(kind=<IntentKind.COURSE_UID: 'course_uid'>, term='1131U0001', year=None)
    >>> classify("課程 110 微積分").year
    110
    """
    text = (text or "").strip()
    if not text:
        return Intent(IntentKind.UNKNOWN)

    match = _UID_RE.search(text)
    if match:
        return Intent(IntentKind.COURSE_UID, match.group(0).upper())

    if _COURSE_NO_RE.match(text):
        return Intent(IntentKind.COURSE_NO, text.upper())

    match = _HISTORICAL_RE.match(text)
    if match:
        return Intent(IntentKind.HISTORICAL_COURSE, match.group(2).strip(), int(match.group(1)))

    if _STUDENT_ID_RE.match(text):
        return Intent(IntentKind.STUDENT_ID, text)

    for kind, pattern in (
        (IntentKind.COURSE, _COURSE_RE),
        (IntentKind.STUDENT, _STUDENT_RE),
        (IntentKind.CONTACT, _CONTACT_RE),
    ):
        term = _after_keyword(pattern, text)
        if term:
            return Intent(kind, term)

    return Intent(IntentKind.UNKNOWN, text)

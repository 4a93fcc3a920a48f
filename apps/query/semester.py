# =============================================================================
# 模块: apps/query/semester.py
# 功能: 由当前日期推算「最近两个学期」（台湾学年制）
# 架构角色: 纯函数，供查询服务（课号查询、课程搜索）与预热流程使用。
#
# 学年以民国纪年（公元年 - 1911），上学期 9 月开学，下学期 2 月开学：
#   - 9-12 月：本学年上学期、上一学年下学期
#   - 1 月：  上学年上学期、再上一学年下学期（下学期资料尚未公布）
#   - 2-8 月：上学年下学期、上学年上学期
# =============================================================================
"""Academic calendar helpers."""

from __future__ import annotations

from datetime import datetime
from typing import List, Tuple

ROC_OFFSET = 1911

Semester = Tuple[int, int]


def roc_year(now: datetime) -> int:
    """Republic-of-China calendar year of ``now`` (2024 -> 113)."""
    return now.year - ROC_OFFSET


def semesters_for_date(now: datetime) -> List[Semester]:
    """Return the two most recent ``(year, term)`` pairs, newest first.

    >>> semesters_for_date(datetime(2024, 10, 1))
    [(113, 1), (112, 2)]
    >>> semesters_for_date(datetime(2025, 3, 1))
    [(113, 2), (113, 1)]
    """
    year = roc_year(now)
    if now.month >= 9:
        return [(year, 1), (year - 1, 2)]
    if now.month >= 2:
        return [(year - 1, 2), (year - 1, 1)]
    return [(year - 1, 1), (year - 2, 2)]

"""Tests for apps/query/semester.py."""

from __future__ import annotations

from datetime import datetime

import pytest

from apps.query.semester import roc_year, semesters_for_date


def test_roc_year():
    assert roc_year(datetime(2024, 10, 1)) == 113
    assert roc_year(datetime(2000, 1, 1)) == 89


@pytest.mark.parametrize(
    "now, expected",
    [
        (datetime(2024, 9, 1), [(113, 1), (112, 2)]),
        (datetime(2024, 12, 31), [(113, 1), (112, 2)]),
        (datetime(2025, 1, 15), [(113, 1), (112, 2)]),
        (datetime(2025, 2, 1), [(113, 2), (113, 1)]),
        (datetime(2025, 8, 31), [(113, 2), (113, 1)]),
    ],
)
def test_semesters_for_date(now, expected):
    assert semesters_for_date(now) == expected

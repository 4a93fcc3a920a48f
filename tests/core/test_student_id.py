"""Tests for core/student_id.py and the StudentSchema consistency check."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core import student_id
from core.schemas import StudentSchema


@pytest.mark.parametrize(
    "sid, expected",
    [
        ("411285001", "資工系"),
        ("49974201", "社學系"),
        ("411274412", "社工系"),
        ("411271201", "法律系"),
        ("711283001", "資訊工程學系碩士班"),
        ("711299001", "未知碩士班"),
        ("811276001", "電機資訊學院博士班"),
        ("411299001", "未知系所"),
        ("12345", "未知"),
    ],
)
def test_derive_department(sid, expected):
    assert student_id.derive_department(sid) == expected


@pytest.mark.parametrize(
    "sid, expected",
    [("411285001", 112), ("49974201", 99), ("4101", 0), ("4ab85001", 0)],
)
def test_extract_year(sid, expected):
    assert student_id.extract_year(sid) == expected


def test_degree_kind():
    assert student_id.degree_kind("711283001") == "碩士"
    assert student_id.degree_kind("411285001") == "學士"
    assert student_id.degree_kind("") == "未知"


def test_department_code_tables_are_inverse():
    for name, code in student_id.DEPARTMENT_CODES.items():
        assert student_id.DEPARTMENT_NAMES[code] == name
        assert code in student_id.FULL_DEPARTMENT_NAMES


# ---------------------------------------------------------------------------
# StudentSchema：year / department 必须与学号一致
# ---------------------------------------------------------------------------
def test_student_schema_accepts_derived_fields():
    s = StudentSchema(id="49974201", name="王小明", year=99, department="社學系")
    assert s.year == 99


def test_student_schema_rejects_mismatched_year():
    with pytest.raises(ValidationError, match="year"):
        StudentSchema(id="411285001", name="王小明", year=111, department="資工系")


def test_student_schema_rejects_mismatched_department():
    with pytest.raises(ValidationError, match="department"):
        StudentSchema(id="411285001", name="王小明", year=112, department="電機系")

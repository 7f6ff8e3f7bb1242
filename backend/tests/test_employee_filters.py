"""
Employee search / filter / sort pipeline tests.

Tests:
  - department id and name are interchangeable (d1 == Engineering)
  - status vocabularies Working/active and Not Working/inactive agree
  - emp_id sorts numerically (RST9 < RST1002 < RST1010), both directions
  - sort is stable and the input list is never mutated
  - search covers the resolved department name
  - full pipeline composes search + department + status + tab + sort
"""

from __future__ import annotations

import copy

import pytest

from ems.services.employee_filters import (
    DepartmentIndex,
    apply_pipeline,
    filter_department,
    filter_status,
    filter_tab,
    normalize_status,
    search,
    sort_employees,
)

DEPARTMENTS = [
    {"id": "d1", "name": "Engineering"},
    {"id": "d2", "name": "Human Resources"},
    {"id": "d3", "name": "Finance"},
]


@pytest.fixture
def index() -> DepartmentIndex:
    return DepartmentIndex(DEPARTMENTS)


@pytest.fixture
def employees() -> list[dict]:
    return [
        {"id": 1, "emp_id": "RST1010", "name": "ANITA DESAI", "email": "anita@ems.test",
         "department": "d1", "status": "Working"},
        {"id": 2, "emp_id": "RST9", "name": "BRIAN COLE", "email": "brian@ems.test",
         "department": "Engineering", "status": "Not Working"},
        {"id": 3, "emp_id": "RST1002", "name": "CHEN WEI", "email": "chen@ems.test",
         "department": "d2", "status": "active"},
        {"id": 4, "emp_id": "RST77", "name": "DIVYA NAIR", "email": "divya@ems.test",
         "department": "Finance", "is_active": False},
    ]


class TestDepartmentIndex:
    def test_id_and_name_resolve_to_name(self, index: DepartmentIndex) -> None:
        assert index.name_for("d1") == "Engineering"
        assert index.name_for("D1") == "Engineering"
        assert index.name_for("engineering") == "Engineering"
        assert index.id_for("Human Resources") == "d2"

    def test_unknown_values_pass_through(self, index: DepartmentIndex) -> None:
        assert index.name_for("Legal") == "Legal"
        assert index.id_for("Legal") is None
        assert index.name_for("") is None
        assert index.name_for(None) is None

    def test_filter_by_id_or_name_is_equivalent(self, index, employees) -> None:
        by_id = filter_department(employees, "d1", index)
        by_name = filter_department(employees, "Engineering", index)
        assert [e["id"] for e in by_id] == [1, 2]
        assert by_id == by_name

    def test_all_department_keeps_everything(self, index, employees) -> None:
        assert filter_department(employees, "all", index) == employees
        assert filter_department(employees, None, index) == employees


class TestStatus:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Working", "active"),
            ("active", "active"),
            ("ACTIVE", "active"),
            ("Not Working", "inactive"),
            ("inactive", "inactive"),
            (True, "active"),
            (False, "inactive"),
            ("on leave", None),
            (None, None),
        ],
    )
    def test_normalize_status(self, raw, expected) -> None:
        assert normalize_status(raw) == expected

    def test_filter_active_matches_both_vocabularies(self, employees) -> None:
        assert [e["id"] for e in filter_status(employees, "active")] == [1, 3]
        assert [e["id"] for e in filter_status(employees, "Working")] == [1, 3]

    def test_filter_inactive_falls_back_to_is_active(self, employees) -> None:
        assert [e["id"] for e in filter_status(employees, "Not Working")] == [2, 4]

    def test_unknown_status_matches_nothing(self, employees) -> None:
        assert filter_status(employees, "on leave") == []

    def test_tab_uses_status_vocabulary(self, employees) -> None:
        assert [e["id"] for e in filter_tab(employees, "inactive")] == [2, 4]
        assert filter_tab(employees, "all") == employees


class TestSorting:
    def test_emp_id_numeric_ascending(self, employees) -> None:
        result = sort_employees(employees, "emp_id", "asc")
        assert [e["emp_id"] for e in result] == ["RST9", "RST77", "RST1002", "RST1010"]

    def test_emp_id_numeric_descending(self, employees) -> None:
        result = sort_employees(employees, "emp_id", "desc")
        assert [e["emp_id"] for e in result] == ["RST1010", "RST1002", "RST77", "RST9"]

    def test_text_sort_is_case_insensitive(self) -> None:
        rows = [{"name": "bob"}, {"name": "Alice"}, {"name": "carol"}]
        assert [r["name"] for r in sort_employees(rows, "name")] == ["Alice", "bob", "carol"]

    def test_sort_is_stable(self) -> None:
        rows = [
            {"id": 1, "department": "Finance"},
            {"id": 2, "department": "Engineering"},
            {"id": 3, "department": "Finance"},
            {"id": 4, "department": "Engineering"},
        ]
        result = sort_employees(rows, "department")
        assert [r["id"] for r in result] == [2, 4, 1, 3]

    def test_input_is_not_mutated(self, index, employees) -> None:
        snapshot = copy.deepcopy(employees)
        apply_pipeline(employees, index, search_term="a", sort_key="emp_id", sort_direction="desc")
        sort_employees(employees, "name", "desc")
        assert employees == snapshot


class TestPipeline:
    def test_search_matches_resolved_department_name(self, index, employees) -> None:
        result = search(employees, "human", index)
        assert [e["id"] for e in result] == [3]

    def test_search_is_case_insensitive_and_trimmed(self, index, employees) -> None:
        assert [e["id"] for e in search(employees, "  Brian@ ", index)] == [2]
        assert search(employees, "   ", index) == employees

    def test_composition(self, index, employees) -> None:
        result = apply_pipeline(
            employees,
            index,
            search_term="ems.test",
            department="Engineering",
            status="all",
            tab="active",
            sort_key="emp_id",
            sort_direction="asc",
        )
        assert [e["id"] for e in result] == [1]

    def test_default_sort_is_by_name(self, index, employees) -> None:
        shuffled = list(reversed(employees))
        result = apply_pipeline(shuffled, index)
        assert [e["name"] for e in result] == ["ANITA DESAI", "BRIAN COLE", "CHEN WEI", "DIVYA NAIR"]

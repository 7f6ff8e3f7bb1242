"""
CSV / XLSX export tests.

Tests:
  - every CSV field is quoted and embedded quotes are doubled
  - the CSV parses back with the csv module into the same cells
  - filenames follow <subject>-<context>-<YYYY-MM-DD>.<ext>
  - XLSX output opens with openpyxl and carries the header row
  - ragged rows are rejected
"""

from __future__ import annotations

import csv
import io
from datetime import date

import openpyxl
import pytest

from ems.services.exports import (
    ATTENDANCE_EXPORT_HEADERS,
    EMPLOYEE_EXPORT_HEADERS,
    attendance_row,
    employee_row,
    export_filename,
    to_csv,
    to_xlsx,
)


class TestCsv:
    def test_all_fields_quoted(self) -> None:
        text = to_csv(("Name", "Note"), [["Asha", 'said "hi", then left']])
        lines = text.splitlines()
        assert lines[0] == '"Name","Note"'
        assert lines[1] == '"Asha","said ""hi"", then left"'

    def test_csv_reader_recovers_cells(self) -> None:
        rows = [["RST1", "O'Neil, Pat", "pat@ems.test", None, "Engineering", "Dev", "Working", "employee", date(2024, 1, 2)]]
        text = to_csv(EMPLOYEE_EXPORT_HEADERS, rows)
        parsed = list(csv.reader(io.StringIO(text)))
        assert parsed[0] == list(EMPLOYEE_EXPORT_HEADERS)
        assert parsed[1] == ["RST1", "O'Neil, Pat", "pat@ems.test", "", "Engineering", "Dev", "Working", "employee", "2024-01-02"]

    def test_embedded_quotes_read_back(self) -> None:
        text = to_csv(("Name", "Note"), [["Asha", 'He said "hi"'], ['"Quoted" Name', 'a, "b"\nc']])
        assert '"He said ""hi"""' in text
        parsed = list(csv.reader(io.StringIO(text)))
        assert parsed == [["Name", "Note"], ["Asha", 'He said "hi"'], ['"Quoted" Name', 'a, "b"\nc']]

    def test_booleans_render_as_yes_no(self) -> None:
        row = attendance_row({"date": "2024-03-04", "isLate": True, "email": "a@ems.test"})
        parsed = list(csv.reader(io.StringIO(to_csv(ATTENDANCE_EXPORT_HEADERS, [row]))))
        late_col = ATTENDANCE_EXPORT_HEADERS.index("Late")
        assert parsed[1][late_col] == "Yes"

    def test_ragged_rows_rejected(self) -> None:
        with pytest.raises(ValueError):
            to_csv(("A", "B"), [["only one"]])

    def test_header_only_when_empty(self) -> None:
        parsed = list(csv.reader(io.StringIO(to_csv(ATTENDANCE_EXPORT_HEADERS, []))))
        assert parsed == [list(ATTENDANCE_EXPORT_HEADERS)]


class TestXlsx:
    def test_workbook_has_header_and_rows(self) -> None:
        payload = to_xlsx(("Name", "Email"), [["Asha", "asha@ems.test"]], sheet_name="Employees")
        wb = openpyxl.load_workbook(io.BytesIO(payload))
        ws = wb["Employees"]
        values = [[c.value for c in row] for row in ws.iter_rows()]
        assert values == [["Name", "Email"], ["Asha", "asha@ems.test"]]


class TestRowsAndFilenames:
    def test_employee_row_prefers_department_name(self) -> None:
        row = employee_row({"emp_id": "RST5", "department": "d1"}, department_name="Engineering")
        assert row[0] == "RST5"
        assert row[EMPLOYEE_EXPORT_HEADERS.index("Department")] == "Engineering"

    @pytest.mark.parametrize(
        "subject, context, expected",
        [
            ("employees", "all", "employees-all-2024-03-04.csv"),
            ("employees", "Human Resources", "employees-human-resources-2024-03-04.csv"),
            ("attendance", "week", "attendance-week-2024-03-04.csv"),
            ("attendance", None, "attendance-2024-03-04.csv"),
        ],
    )
    def test_export_filename(self, subject, context, expected) -> None:
        assert export_filename(subject, context, date(2024, 3, 4)) == expected

    def test_export_filename_extension(self) -> None:
        assert export_filename("employees", "all", date(2024, 3, 4), "xlsx").endswith(".xlsx")

"""
Tabular exports for the employee and attendance screens.

CSV output quotes every field and doubles embedded quotes (RFC 4180); the
XLSX variant carries the same header row. Filenames follow
``<subject>-<context>-<YYYY-MM-DD>.<ext>``.
"""

from __future__ import annotations

import csv
import io
import re
from datetime import date, datetime
from typing import Any, Mapping, Sequence

import pandas as pd

EMPLOYEE_EXPORT_HEADERS: tuple[str, ...] = (
    "Employee ID",
    "Name",
    "Email",
    "Mobile",
    "Department",
    "Designation",
    "Status",
    "Role",
    "Hire Date",
)

ATTENDANCE_EXPORT_HEADERS: tuple[str, ...] = (
    "Date",
    "Employee ID",
    "Name",
    "Email",
    "Check In",
    "Check Out",
    "Working Hours",
    "Late",
    "Status",
    "Check In Address",
    "Check Out Address",
)

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _frame(headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> pd.DataFrame:
    for i, row in enumerate(rows):
        if len(row) != len(headers):
            raise ValueError(
                f"Row {i} has {len(row)} cells, expected {len(headers)}"
            )
    data = [[_cell(v) for v in row] for row in rows]
    return pd.DataFrame(data, columns=list(headers), dtype=object)


def to_csv(headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> str:
    return _frame(headers, rows).to_csv(
        index=False,
        quoting=csv.QUOTE_ALL,
        doublequote=True,
        lineterminator="\n",
    )


def to_xlsx(headers: Sequence[str], rows: Sequence[Sequence[Any]], sheet_name: str = "Export") -> bytes:
    buffer = io.BytesIO()
    _frame(headers, rows).to_excel(buffer, index=False, sheet_name=sheet_name, engine="openpyxl")
    return buffer.getvalue()


def _slug(value: str) -> str:
    return _SLUG_RE.sub("-", value.lower()).strip("-")


def export_filename(subject: str, context: str | None, on: date, ext: str = "csv") -> str:
    parts = [_slug(subject)]
    if context and _slug(context):
        parts.append(_slug(context))
    parts.append(on.isoformat())
    return f"{'-'.join(parts)}.{ext}"


def employee_row(employee: Mapping[str, Any], department_name: str | None = None) -> list[Any]:
    return [
        employee.get("emp_id") or employee.get("employeeId"),
        employee.get("name"),
        employee.get("email"),
        employee.get("mobile_number"),
        department_name if department_name is not None else employee.get("department"),
        employee.get("designation") or employee.get("position"),
        employee.get("status"),
        employee.get("role"),
        employee.get("hireDate"),
    ]


def attendance_row(record: Mapping[str, Any]) -> list[Any]:
    return [
        record.get("date"),
        record.get("employeeId"),
        record.get("name"),
        record.get("email"),
        record.get("checkIn"),
        record.get("checkOut"),
        record.get("workingHours"),
        record.get("isLate"),
        record.get("status"),
        record.get("checkInAddress"),
        record.get("checkOutAddress"),
    ]

"""
Employee search / filter / sort pipeline.

Every stage takes a sequence of employee mappings (API-shaped dicts) and
returns a new list; the input collection is never mutated, so stages can be
composed freely and tested in isolation.

Department values may be a canonical id (``d1``) or a free-text name
(``Engineering``). ``DepartmentIndex`` resolves both to the canonical name
with dict lookups built once from the reference list.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Sequence

Record = Mapping[str, Any]

SEARCH_FIELDS: tuple[str, ...] = (
    "name",
    "email",
    "emp_id",
    "employeeId",
    "mobile_number",
    "location",
    "department",
    "designation",
    "position",
    "status",
    "role",
)

NUMERIC_SORT_KEYS: frozenset[str] = frozenset({"emp_id", "employeeId", "id"})

_DEPARTMENT_ID_RE = re.compile(r"^d\d+$", re.IGNORECASE)
_NON_DIGITS_RE = re.compile(r"\D+")

_STATUS_SYNONYMS: dict[str, str] = {
    "active": "active",
    "working": "active",
    "inactive": "inactive",
    "not working": "inactive",
}


class DepartmentIndex:
    """Bidirectional department id <-> name lookup."""

    def __init__(self, departments: Iterable[Record] = ()) -> None:
        self._name_by_id: dict[str, str] = {}
        self._id_by_name: dict[str, str] = {}
        for dept in departments:
            dept_id = str(dept.get("id") or "").strip()
            name = str(dept.get("name") or "").strip()
            if not dept_id or not name:
                continue
            self._name_by_id[dept_id.lower()] = name
            self._id_by_name[name.lower()] = dept_id

    def __len__(self) -> int:
        return len(self._name_by_id)

    def name_for(self, value: Any) -> str | None:
        """Canonical department name for an id or a name; unknown names pass through."""
        if value is None:
            return None
        raw = str(value).strip()
        if not raw:
            return None
        key = raw.lower()
        if _DEPARTMENT_ID_RE.match(raw) and key in self._name_by_id:
            return self._name_by_id[key]
        if key in self._id_by_name:
            return self._name_by_id[self._id_by_name[key].lower()]
        return raw

    def id_for(self, value: Any) -> str | None:
        name = self.name_for(value)
        if name is None:
            return None
        return self._id_by_name.get(name.lower())


def normalize_status(value: Any) -> str | None:
    """Map ``active``/``Working`` and ``inactive``/``Not Working`` onto one vocabulary."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "active" if value else "inactive"
    return _STATUS_SYNONYMS.get(str(value).strip().lower())


def employee_status(employee: Record) -> str | None:
    status = normalize_status(employee.get("status"))
    if status is None and "is_active" in employee:
        status = normalize_status(employee.get("is_active"))
    return status


def search(
    employees: Sequence[Record],
    term: str | None,
    departments: DepartmentIndex | None = None,
) -> list[Record]:
    needle = (term or "").strip().lower()
    if not needle:
        return list(employees)

    def matches(employee: Record) -> bool:
        values = [employee.get(field) for field in SEARCH_FIELDS]
        if departments is not None:
            values.append(departments.name_for(employee.get("department")))
        return any(v is not None and needle in str(v).lower() for v in values)

    return [e for e in employees if matches(e)]


def filter_department(
    employees: Sequence[Record],
    department: str | None,
    departments: DepartmentIndex,
) -> list[Record]:
    if department is None or not str(department).strip() or str(department).lower() == "all":
        return list(employees)
    wanted = (departments.name_for(department) or "").lower()
    return [
        e for e in employees
        if (departments.name_for(e.get("department")) or "").lower() == wanted
    ]


def filter_status(employees: Sequence[Record], status: str | None) -> list[Record]:
    if status is None or not str(status).strip() or str(status).lower() == "all":
        return list(employees)
    wanted = normalize_status(status)
    if wanted is None:
        return []
    return [e for e in employees if employee_status(e) == wanted]


def filter_tab(employees: Sequence[Record], tab: str | None) -> list[Record]:
    """Tabs are ``all`` / ``active`` / ``inactive``; same vocabulary as status."""
    return filter_status(employees, tab)


def _numeric_key(value: Any) -> tuple[int, int]:
    digits = _NON_DIGITS_RE.sub("", "" if value is None else str(value))
    if not digits:
        return (0, 0)
    return (1, int(digits))


def _text_key(value: Any) -> str:
    return "" if value is None else str(value).lower()


def sort_employees(
    employees: Sequence[Record],
    key: str | None,
    direction: str = "asc",
) -> list[Record]:
    """Stable sort; ``emp_id``-like keys compare by their digits as integers."""
    if not key:
        return list(employees)
    descending = str(direction).lower() == "desc"
    if key in NUMERIC_SORT_KEYS:
        return sorted(employees, key=lambda e: _numeric_key(e.get(key)), reverse=descending)
    return sorted(employees, key=lambda e: _text_key(e.get(key)), reverse=descending)


def apply_pipeline(
    employees: Sequence[Record],
    departments: DepartmentIndex,
    search_term: str | None = None,
    department: str | None = None,
    status: str | None = None,
    tab: str | None = None,
    sort_key: str | None = "name",
    sort_direction: str = "asc",
) -> list[Record]:
    result = search(employees, search_term, departments)
    result = filter_department(result, department, departments)
    result = filter_status(result, status)
    result = filter_tab(result, tab)
    return sort_employees(result, sort_key, sort_direction)

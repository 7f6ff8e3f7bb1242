"""
Dashboard aggregates.

Pure functions over plain records so the numbers behind the dashboard
cards and charts can be computed (and tested) without a database. The
stats router loads the rows and hands them over.
"""

from collections import Counter, defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, Sequence

from ems.services.employee_filters import DepartmentIndex, employee_status

Record = Mapping[str, Any]

ACTIVITY_PERIODS = {"week": 7, "month": 30, "year": 365}
UNASSIGNED = "Unassigned"


def _percent(part: int, whole: int) -> int:
    return round(part * 100 / whole) if whole else 0


def _day(value: date | datetime | None) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def activity_window(period: str, today: date) -> tuple[date, date]:
    """Inclusive ``(start, end)`` days covered by a team-activity period."""
    days = ACTIVITY_PERIODS.get(period, ACTIVITY_PERIODS["week"])
    return today - timedelta(days=days), today


def summarize(
    employees: Sequence[Record],
    today_attendance: Sequence[Record],
    kyc_statuses: Iterable[str],
    open_tasks: int,
    today: date,
    departments: DepartmentIndex | None = None,
    new_hire_days: int = 30,
) -> dict:
    """Headline numbers of the admin dashboard."""
    departments = departments or DepartmentIndex()
    total = len(employees)
    active = sum(1 for e in employees if employee_status(e) == "active")
    department_names = {departments.name_for(e.get("department")) for e in employees} - {None}
    hired_since = today - timedelta(days=new_hire_days)
    new_hires = sum(
        1 for e in employees if (hired := _day(e.get("hireDate"))) is not None and hired > hired_since
    )

    kyc = Counter(kyc_statuses)
    present = {r.get("email") for r in today_attendance if r.get("checkIn") is not None}
    late = {r.get("email") for r in today_attendance if r.get("isLate")}

    return {
        "totalEmployees": total,
        "activeEmployees": active,
        "departmentsCount": len(department_names),
        "newHires": new_hires,
        "presentToday": len(present),
        "lateToday": len(late),
        "attendanceRate": _percent(len(present), total),
        "pendingKyc": kyc.get("pending", 0),
        "kycCompletionRate": _percent(kyc.get("approved", 0), total),
        "openTasks": open_tasks,
    }


def team_activity(
    start: date,
    end: date,
    attendance: Iterable[Record],
    completed_tasks: Iterable[date | datetime | None],
    events: Iterable[date | datetime | None],
) -> list[dict]:
    """One point per day in ``[start, end]``; days without data report zeros."""
    attendance_count: Counter = Counter()
    active_users: dict[date, set] = defaultdict(set)
    for record in attendance:
        day = _day(record.get("date"))
        if day is None:
            continue
        attendance_count[day] += 1
        if record.get("checkIn") is not None and record.get("email"):
            active_users[day].add(record["email"])

    tasks = Counter(d for d in map(_day, completed_tasks) if d is not None)
    scheduled = Counter(d for d in map(_day, events) if d is not None)

    points = []
    day = start
    while day <= end:
        points.append(
            {
                "date": day,
                "activeUsers": len(active_users.get(day, ())),
                "attendanceCount": attendance_count[day],
                "completedTasks": tasks[day],
                "events": scheduled[day],
            }
        )
        day += timedelta(days=1)
    return points


def department_breakdown(
    employees: Iterable[Record], departments: DepartmentIndex | None = None
) -> list[dict]:
    """Headcount per department, split by working status, largest first."""
    departments = departments or DepartmentIndex()
    buckets: dict[str, dict] = {}
    for emp in employees:
        name = departments.name_for(emp.get("department")) or UNASSIGNED
        bucket = buckets.setdefault(
            name, {"name": name, "total": 0, "working": 0, "notWorking": 0}
        )
        bucket["total"] += 1
        if employee_status(emp) == "active":
            bucket["working"] += 1
        else:
            bucket["notWorking"] += 1
    return sorted(buckets.values(), key=lambda b: (-b["total"], b["name"].lower()))


def kyc_completion(employees: Iterable[Record]) -> dict:
    """Share of employees with approved KYC, overall and per designation."""
    groups: dict[str, list[int]] = {}
    for emp in employees:
        designation = emp.get("designation") or UNASSIGNED
        counts = groups.setdefault(designation, [0, 0])
        counts[0] += 1
        if emp.get("kycStatus") == "approved":
            counts[1] += 1

    total = sum(c[0] for c in groups.values())
    approved = sum(c[1] for c in groups.values())
    return {
        "totalEmployees": total,
        "approved": approved,
        "completionRate": _percent(approved, total),
        "byDesignation": [
            {"name": name, "total": t, "approved": a, "completionRate": _percent(a, t)}
            for name, (t, a) in sorted(groups.items(), key=lambda kv: kv[0].lower())
        ],
    }


def personal_summary(records: Iterable[Record], today: date) -> dict:
    """Attendance tiles of an employee's own dashboard (rolling windows)."""
    week_from = today - timedelta(days=7)
    month_from = today - timedelta(days=30)
    this_week = this_month = late_month = 0
    checked_in_today = False
    for record in records:
        day = _day(record.get("date"))
        if day is None or day > today:
            continue
        if day == today and record.get("checkIn") is not None:
            checked_in_today = True
        if day >= week_from:
            this_week += 1
        if day >= month_from:
            this_month += 1
            if record.get("isLate"):
                late_month += 1
    return {
        "today": "Present" if checked_in_today else "Not checked in",
        "thisWeek": this_week,
        "thisMonth": this_month,
        "lateThisMonth": late_month,
    }

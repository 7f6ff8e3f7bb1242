"""
Dashboard aggregate tests (pure functions, no database).

Tests:
  - summarize: headcount, department ids and names counted once, new hires, rates
  - team_activity: every day in the window is present, empty days are zero
  - department_breakdown: largest first, unassigned bucket, working split
  - kyc_completion: overall and per designation rates
  - personal_summary: rolling week / month windows and the today tile
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from ems.services.dashboard import (
    activity_window,
    department_breakdown,
    kyc_completion,
    personal_summary,
    summarize,
    team_activity,
)
from ems.services.employee_filters import DepartmentIndex

TODAY = date(2024, 3, 6)
INDEX = DepartmentIndex([{"id": "d1", "name": "Engineering"}, {"id": "d3", "name": "Finance"}])


def _checked_in(email: str, day: date, late: bool = False) -> dict:
    return {
        "email": email,
        "date": day,
        "checkIn": datetime(day.year, day.month, day.day, 4, 0, tzinfo=timezone.utc),
        "isLate": late,
    }


class TestSummarize:
    def test_headline_numbers(self) -> None:
        employees = [
            {"status": "Working", "department": "d1", "hireDate": date(2024, 2, 20)},
            {"status": "Working", "department": "Engineering", "hireDate": date(2020, 1, 1)},
            {"status": "Not Working", "department": "d3", "hireDate": None},
            {"status": "Not Working", "department": None},
        ]
        attendance = [
            _checked_in("a@ems.test", TODAY),
            _checked_in("b@ems.test", TODAY, late=True),
        ]

        result = summarize(employees, attendance, ["pending", "approved", "pending"], 5, TODAY, INDEX)

        assert result == {
            "totalEmployees": 4,
            "activeEmployees": 2,
            "departmentsCount": 2,
            "newHires": 1,
            "presentToday": 2,
            "lateToday": 1,
            "attendanceRate": 50,
            "pendingKyc": 2,
            "kycCompletionRate": 25,
            "openTasks": 5,
        }

    def test_empty_company(self) -> None:
        result = summarize([], [], [], 0, TODAY)
        assert result["attendanceRate"] == 0
        assert result["kycCompletionRate"] == 0
        assert result["departmentsCount"] == 0


class TestTeamActivity:
    def test_window(self) -> None:
        assert activity_window("week", TODAY) == (date(2024, 2, 28), TODAY)
        assert activity_window("month", TODAY) == (date(2024, 2, 5), TODAY)
        assert activity_window("bogus", TODAY) == (date(2024, 2, 28), TODAY)

    def test_days_are_zero_filled(self) -> None:
        start, end = date(2024, 3, 4), TODAY
        attendance = [
            _checked_in("a@ems.test", date(2024, 3, 4)),
            _checked_in("a@ems.test", TODAY),
            _checked_in("b@ems.test", TODAY),
            {"email": "c@ems.test", "date": TODAY, "checkIn": None},
        ]
        tasks = [datetime(2024, 3, 5, 10, 0, tzinfo=timezone.utc), None]
        events = [datetime(2024, 3, 5, 9, 0)]

        points = team_activity(start, end, attendance, tasks, events)

        assert [p["date"] for p in points] == [date(2024, 3, 4), date(2024, 3, 5), TODAY]
        assert points[0] == {
            "date": date(2024, 3, 4),
            "activeUsers": 1,
            "attendanceCount": 1,
            "completedTasks": 0,
            "events": 0,
        }
        assert points[1]["completedTasks"] == 1
        assert points[1]["events"] == 1
        assert points[1]["attendanceCount"] == 0
        assert points[2]["attendanceCount"] == 3
        assert points[2]["activeUsers"] == 2


class TestDepartmentBreakdown:
    def test_buckets(self) -> None:
        employees = [
            {"status": "Working", "department": "d1"},
            {"status": "Not Working", "department": "Engineering"},
            {"status": "Working", "department": "d3"},
            {"status": "Working", "department": ""},
        ]

        rows = department_breakdown(employees, INDEX)

        assert rows[0] == {"name": "Engineering", "total": 2, "working": 1, "notWorking": 1}
        assert [r["name"] for r in rows[1:]] == ["Finance", "Unassigned"]


class TestKycCompletion:
    def test_by_designation(self) -> None:
        employees = [
            {"designation": "Engineer", "kycStatus": "approved"},
            {"designation": "Engineer", "kycStatus": "pending"},
            {"designation": "Accountant", "kycStatus": "approved"},
        ]

        result = kyc_completion(employees)

        assert result["totalEmployees"] == 3
        assert result["approved"] == 2
        assert result["completionRate"] == 67
        assert result["byDesignation"] == [
            {"name": "Accountant", "total": 1, "approved": 1, "completionRate": 100},
            {"name": "Engineer", "total": 2, "approved": 1, "completionRate": 50},
        ]


class TestPersonalSummary:
    def test_rolling_windows(self) -> None:
        records = [
            _checked_in("p@ems.test", TODAY, late=True),
            _checked_in("p@ems.test", date(2024, 3, 1)),
            _checked_in("p@ems.test", date(2024, 2, 10), late=True),
            _checked_in("p@ems.test", date(2024, 1, 2), late=True),
        ]

        assert personal_summary(records, TODAY) == {
            "today": "Present",
            "thisWeek": 2,
            "thisMonth": 3,
            "lateThisMonth": 2,
        }

    def test_not_checked_in(self) -> None:
        assert personal_summary([], TODAY)["today"] == "Not checked in"

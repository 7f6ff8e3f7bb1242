"""
Dashboard statistics routes.

Rows are loaded with plain ORM selects and aggregated in
``ems.services.dashboard``, so the same numbers come out of PostgreSQL
and the SQLite test database.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ems.core.middleware import STAFF_ROLES, get_current_user, require_role
from ems.db.models import Attendance, CalendarEvent, Department, Employee, KycSubmission, Task, User
from ems.db.session import get_db
from ems.schemas.stats import (
    ActivityPeriod,
    DashboardSummary,
    DepartmentBreakdown,
    KycCompletion,
    PersonalSummary,
    TeamActivity,
)
from ems.services.attendance_records import resolve_is_late
from ems.services.dashboard import (
    activity_window,
    department_breakdown,
    kyc_completion,
    personal_summary,
    summarize,
    team_activity,
)
from ems.services.employee_filters import DepartmentIndex

logger = logging.getLogger(__name__)

router = APIRouter()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    """``[start 00:00, end + 1 day 00:00)`` in UTC."""
    return (
        datetime.combine(start, time.min, tzinfo=timezone.utc),
        datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc),
    )


def _employee_record(emp: Employee) -> dict:
    return {
        "status": emp.status,
        "is_active": emp.is_active,
        "department": emp.department,
        "designation": emp.designation,
        "hireDate": emp.hire_date,
        "kycStatus": emp.kyc_status,
    }


def _attendance_record(row: Attendance) -> dict:
    return {
        "email": row.email,
        "date": row.date,
        "checkIn": row.check_in,
        "isLate": resolve_is_late(row.is_late, row.check_in) if row.check_in else False,
    }


async def _department_index(db: AsyncSession) -> DepartmentIndex:
    result = await db.execute(select(Department))
    return DepartmentIndex({"id": d.id, "name": d.name} for d in result.scalars().all())


async def _active_employees(db: AsyncSession) -> list[dict]:
    result = await db.execute(select(Employee).where(Employee.is_active.is_(True)))
    return [_employee_record(e) for e in result.scalars().all()]


@router.get("/summary", response_model=DashboardSummary, summary="Dashboard headline numbers")
async def get_summary(
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role(*STAFF_ROLES)),
) -> DashboardSummary:
    today = _now().date()

    employees_result = await db.execute(select(Employee))
    employees = [_employee_record(e) for e in employees_result.scalars().all()]

    attendance_result = await db.execute(select(Attendance).where(Attendance.date == today))
    today_attendance = [_attendance_record(r) for r in attendance_result.scalars().all()]

    kyc_result = await db.execute(select(KycSubmission.status))
    open_tasks = await db.scalar(
        select(func.count()).select_from(Task).where(Task.status != "completed")
    )

    return DashboardSummary(
        **summarize(
            employees,
            today_attendance,
            kyc_result.scalars().all(),
            open_tasks or 0,
            today,
            departments=await _department_index(db),
        )
    )


@router.get("/team-activity", response_model=TeamActivity, summary="Daily team activity")
async def get_team_activity(
    period: ActivityPeriod = Query(default="week"),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role(*STAFF_ROLES)),
) -> TeamActivity:
    start, end = activity_window(period, _now().date())
    dt_from, dt_to = _day_bounds(start, end)

    attendance_result = await db.execute(
        select(Attendance).where(Attendance.date >= start, Attendance.date <= end)
    )
    tasks_result = await db.execute(
        select(Task.completed_at).where(
            Task.status == "completed",
            Task.completed_at >= dt_from,
            Task.completed_at < dt_to,
        )
    )
    events_result = await db.execute(
        select(CalendarEvent.start).where(
            CalendarEvent.start >= dt_from,
            CalendarEvent.start < dt_to,
        )
    )

    points = team_activity(
        start,
        end,
        [_attendance_record(r) for r in attendance_result.scalars().all()],
        tasks_result.scalars().all(),
        events_result.scalars().all(),
    )
    logger.debug("Team activity %s: %d points", period, len(points))
    return TeamActivity(period=period, startDate=start, endDate=end, data=points)


@router.get("/departments", response_model=DepartmentBreakdown, summary="Headcount by department")
async def get_department_breakdown(
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role(*STAFF_ROLES)),
) -> DepartmentBreakdown:
    employees = await _active_employees(db)
    return DepartmentBreakdown(
        total=len(employees),
        data=department_breakdown(employees, await _department_index(db)),
    )


@router.get("/kyc-completion", response_model=KycCompletion, summary="KYC completion by designation")
async def get_kyc_completion(
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role(*STAFF_ROLES)),
) -> KycCompletion:
    return KycCompletion(**kyc_completion(await _active_employees(db)))


@router.get("/me", response_model=PersonalSummary, summary="Dashboard tiles of the current user")
async def get_my_summary(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PersonalSummary:
    today = _now().date()
    attendance_result = await db.execute(
        select(Attendance).where(
            Attendance.email == current_user.email,
            Attendance.date >= today - timedelta(days=30),
        )
    )
    kyc_result = await db.execute(
        select(KycSubmission.status)
        .where(KycSubmission.email == current_user.email)
        .order_by(KycSubmission.submitted_at.desc(), KycSubmission.id.desc())
        .limit(1)
    )
    open_tasks = await db.scalar(
        select(func.count())
        .select_from(Task)
        .where(Task.assignee_email == current_user.email, Task.status != "completed")
    )

    tiles = personal_summary([_attendance_record(r) for r in attendance_result.scalars().all()], today)
    return PersonalSummary(
        **tiles,
        kycStatus=kyc_result.scalar_one_or_none() or "not_submitted",
        openTasks=open_tasks or 0,
    )

"""
Attendance API routes.

One record per email per UTC calendar day. Check-in time is always the
server clock; ``isLate`` is evaluated once at check-in and back-filled on
read for older rows that lack it.
"""

import logging
from datetime import date, datetime, time, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ems.core.middleware import STAFF_ROLES, get_current_user, require_role
from ems.db.models import Attendance, Employee, User
from ems.db.session import get_db
from ems.schemas.attendance import (
    AttendanceResponse,
    AutoCheckoutResult,
    CheckInRequest,
    CheckOutRequest,
)
from ems.services.attendance_records import period_start, resolve_is_late, working_hours
from ems.services.exports import (
    ATTENDANCE_EXPORT_HEADERS,
    attendance_row,
    export_filename,
    to_csv,
    to_xlsx,
)
from ems.services.lateness import is_late

logger = logging.getLogger(__name__)

router = APIRouter()

_AUTO_CHECKOUT_ADDRESS = "Auto-checkout (midnight reset)"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_response(row: Attendance, emp_ids: dict[str, str] | None = None) -> AttendanceResponse:
    check_in = _aware(row.check_in)
    check_out = _aware(row.check_out)
    return AttendanceResponse(
        id=row.id,
        email=row.email,
        name=row.name,
        employeeId=(emp_ids or {}).get(row.email),
        date=row.date,
        checkIn=check_in,
        checkOut=check_out,
        isLate=resolve_is_late(row.is_late, check_in),
        status=row.status,
        notes=row.notes,
        checkoutType=row.checkout_type,
        checkInLatitude=row.check_in_latitude,
        checkInLongitude=row.check_in_longitude,
        checkInAddress=row.check_in_address,
        checkOutLatitude=row.check_out_latitude,
        checkOutLongitude=row.check_out_longitude,
        checkOutAddress=row.check_out_address,
        checkInPhoto=row.check_in_photo,
        checkOutPhoto=row.check_out_photo,
        workingHours=working_hours(check_in, check_out),
    )


async def _employee_ids(db: AsyncSession, emails: set[str]) -> dict[str, str]:
    if not emails:
        return {}
    result = await db.execute(
        select(Employee.email, Employee.emp_id).where(Employee.email.in_(emails))
    )
    return {email: emp_id for email, emp_id in result.all() if emp_id}


def _check_own_email(email: str, current_user: User) -> None:
    if current_user.role not in STAFF_ROLES and email != current_user.email.lower():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only record attendance for your own account",
        )


async def _query_attendance(
    db: AsyncSession,
    period: str | None,
    search: str | None,
    on_date: date | None,
    limit: int,
    email: str | None = None,
) -> list[AttendanceResponse]:
    q = select(Attendance)
    if email is not None:
        q = q.where(Attendance.email == email)

    # A specific date takes priority over the period filter
    if on_date is not None:
        q = q.where(Attendance.date == on_date)
    else:
        start = period_start(period, _now().date())
        if start is not None:
            q = q.where(Attendance.date >= start)

    if search:
        pattern = f"%{search.strip()}%"
        q = q.where(or_(Attendance.name.ilike(pattern), Attendance.email.ilike(pattern)))

    q = q.order_by(Attendance.date.desc(), Attendance.check_in.desc()).limit(limit)
    rows = (await db.execute(q)).scalars().all()
    emp_ids = await _employee_ids(db, {r.email for r in rows})
    return [_to_response(r, emp_ids) for r in rows]


@router.get(
    "/",
    response_model=list[AttendanceResponse],
    summary="All attendance records (admin/hr/manager)",
)
async def list_attendance(
    filter: str = Query(default="all", pattern="^(today|week|month|all)$"),
    search: str | None = Query(default=None, description="Name or email substring"),
    on_date: date | None = Query(default=None, alias="date", description="ISO date YYYY-MM-DD"),
    limit: int = Query(default=1000, ge=1, le=10000),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role(*STAFF_ROLES)),
) -> list[AttendanceResponse]:
    return await _query_attendance(db, filter, search, on_date, limit)


@router.get(
    "/my",
    response_model=list[AttendanceResponse],
    summary="Attendance history of the current user",
)
async def my_attendance(
    filter: str = Query(default="all", pattern="^(today|week|month|all)$"),
    limit: int = Query(default=1000, ge=1, le=10000),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[AttendanceResponse]:
    return await _query_attendance(
        db, filter, None, None, limit, email=current_user.email.lower()
    )


@router.get(
    "/today",
    response_model=AttendanceResponse | None,
    summary="Today's record for an email, or null",
)
async def today_attendance(
    email: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> AttendanceResponse | None:
    email = email.strip().lower()
    result = await db.execute(
        select(Attendance).where(Attendance.email == email, Attendance.date == _now().date())
    )
    row = result.scalar_one_or_none()
    if row is None:
        return None
    return _to_response(row, await _employee_ids(db, {row.email}))


@router.post("/checkin", response_model=AttendanceResponse, summary="Check in for today")
async def check_in(
    body: CheckInRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> AttendanceResponse:
    email = body.email.strip().lower()
    _check_own_email(email, current_user)

    now = _now()
    result = await db.execute(
        select(Attendance).where(Attendance.email == email, Attendance.date == now.date())
    )
    row = result.scalar_one_or_none()
    if row is not None and row.check_in is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Already checked in today",
        )

    if row is None:
        row = Attendance(email=email, date=now.date())
        db.add(row)

    row.name = body.name or current_user.name
    row.check_in = now
    row.status = "checked_in"
    row.is_late = is_late(now)
    row.check_in_latitude = body.latitude
    row.check_in_longitude = body.longitude
    row.check_in_address = body.address
    row.check_in_photo = body.photoBase64

    await db.commit()
    await db.refresh(row)
    logger.info(
        "Check-in %s at %s (late=%s, location=%s, photo=%s)",
        email, now.isoformat(), row.is_late, body.latitude is not None, bool(body.photoBase64),
    )
    return _to_response(row, await _employee_ids(db, {email}))


@router.post("/checkout", response_model=AttendanceResponse, summary="Check out for today")
async def check_out(
    body: CheckOutRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> AttendanceResponse:
    email = body.email.strip().lower()
    _check_own_email(email, current_user)

    now = _now()
    result = await db.execute(
        select(Attendance).where(
            Attendance.email == email,
            Attendance.date == now.date(),
            Attendance.check_in.is_not(None),
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Check-in first",
        )
    if row.check_out is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Already checked out",
        )

    row.check_out = now
    row.checkout_type = body.checkoutType or "manual"
    row.check_out_latitude = body.latitude
    row.check_out_longitude = body.longitude
    row.check_out_address = body.address
    row.check_out_photo = body.photoBase64
    row.status = "present"

    await db.commit()
    await db.refresh(row)
    logger.info("Check-out %s at %s (%s)", email, now.isoformat(), row.checkout_type)
    return _to_response(row, await _employee_ids(db, {email}))


@router.post(
    "/auto-checkout-midnight",
    response_model=AutoCheckoutResult,
    summary="Close every open record of today at 23:59 (admin)",
)
async def auto_checkout_midnight(
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> AutoCheckoutResult:
    today = _now().date()
    checkout_time = datetime.combine(today, time(23, 59), tzinfo=timezone.utc)

    result = await db.execute(
        select(Attendance).where(
            Attendance.date == today,
            Attendance.check_in.is_not(None),
            Attendance.check_out.is_(None),
        )
    )
    rows = result.scalars().all()
    for row in rows:
        row.check_out = checkout_time
        row.checkout_type = "auto-midnight"
        row.check_out_address = _AUTO_CHECKOUT_ADDRESS
        row.status = "present"
    await db.commit()

    logger.info("Auto-checked out %d records for %s", len(rows), today)
    return AutoCheckoutResult(
        message=f"Auto-checked out {len(rows)} employees",
        count=len(rows),
    )


@router.get("/export", summary="Export attendance as CSV or XLSX")
async def export_attendance(
    filter: str = Query(default="all", pattern="^(today|week|month|all)$"),
    search: str | None = Query(default=None),
    on_date: date | None = Query(default=None, alias="date"),
    fmt: str = Query(default="csv", alias="format", pattern="^(csv|xlsx)$"),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role(*STAFF_ROLES)),
) -> Response:
    records = await _query_attendance(db, filter, search, on_date, 10000)
    rows = [attendance_row(r.model_dump()) for r in records]
    context = on_date.isoformat() if on_date else filter
    filename = export_filename("attendance", context, _now().date(), fmt)
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}

    if fmt == "xlsx":
        return Response(
            content=to_xlsx(ATTENDANCE_EXPORT_HEADERS, rows, sheet_name="Attendance"),
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers=headers,
        )
    return Response(
        content=to_csv(ATTENDANCE_EXPORT_HEADERS, rows),
        media_type="text/csv; charset=utf-8",
        headers=headers,
    )

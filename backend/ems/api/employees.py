import logging
import secrets
import string
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ems.core.middleware import STAFF_ROLES, get_current_user, require_role
from ems.core.security import hash_password
from ems.db.models import Attendance, Department, Employee, KycSubmission, User
from ems.db.session import get_db
from ems.schemas.employee import (
    DeletionSummary,
    DepartmentResponse,
    EmployeeCreate,
    EmployeeCreateResponse,
    EmployeeDeleteResponse,
    EmployeeResponse,
    EmployeeUpdate,
)
from ems.services.employee_filters import DepartmentIndex, apply_pipeline
from ems.services.exports import (
    EMPLOYEE_EXPORT_HEADERS,
    employee_row,
    export_filename,
    to_csv,
    to_xlsx,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_EMP_ID_ATTEMPTS = 20


def _to_response(emp: Employee, departments: DepartmentIndex | None = None) -> EmployeeResponse:
    return EmployeeResponse(
        id=emp.id,
        emp_id=emp.emp_id,
        name=emp.name,
        email=emp.email,
        mobile_number=emp.mobile_number,
        location=emp.location,
        designation=emp.designation,
        status=emp.status,
        is_active=emp.is_active,
        department=emp.department,
        departmentName=departments.name_for(emp.department) if departments else None,
        position=emp.position,
        role=emp.role,
        hireDate=emp.hire_date,
        kycStatus=emp.kyc_status,
    )


def _account_role(employee_role: str | None) -> str:
    role = (employee_role or "").lower()
    if "admin" in role:
        return "admin"
    if "manager" in role:
        return "manager"
    if role == "hr" or "human resources" in role:
        return "hr"
    return "employee"


async def _department_index(db: AsyncSession) -> DepartmentIndex:
    result = await db.execute(select(Department).order_by(Department.id))
    return DepartmentIndex(
        {"id": d.id, "name": d.name} for d in result.scalars().all()
    )


async def _get_employee_or_404(employee_id: int, db: AsyncSession) -> Employee:
    result = await db.execute(select(Employee).where(Employee.id == employee_id))
    emp = result.scalar_one_or_none()
    if emp is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Employee not found",
        )
    return emp


async def _generate_emp_id(db: AsyncSession) -> str:
    year = date.today().year
    for _ in range(_EMP_ID_ATTEMPTS):
        candidate = f"EMP{year}{secrets.randbelow(10000):04d}"
        taken = await db.execute(select(Employee.id).where(Employee.emp_id == candidate))
        if taken.scalar_one_or_none() is None:
            return candidate
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Could not allocate a unique employee ID",
    )


def _temp_password(length: int = 8) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


async def _filtered_employees(
    db: AsyncSession,
    search: str | None,
    department: str | None,
    status_filter: str | None,
    tab: str | None,
    sort: str | None,
    direction: str,
) -> tuple[list[dict], DepartmentIndex]:
    departments = await _department_index(db)
    result = await db.execute(select(Employee).order_by(Employee.id))
    rows = [_to_response(e, departments).model_dump() for e in result.scalars().all()]
    filtered = apply_pipeline(
        rows,
        departments,
        search_term=search,
        department=department,
        status=status_filter,
        tab=tab,
        sort_key=sort,
        sort_direction=direction,
    )
    return filtered, departments


@router.get(
    "/",
    response_model=list[EmployeeResponse],
    summary="List employees with search, filters and sorting",
)
async def list_employees(
    search: str | None = Query(default=None, description="Substring over name, email, ID, phone, department, ..."),
    department: str | None = Query(default=None, description="Department id (d1) or name"),
    status_filter: str | None = Query(default=None, alias="status", description="active / inactive / Working / Not Working"),
    tab: str | None = Query(default=None, description="all / active / inactive"),
    sort: str | None = Query(default="name"),
    direction: str = Query(default="asc", pattern="^(asc|desc)$"),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[dict]:
    employees, _ = await _filtered_employees(
        db, search, department, status_filter, tab, sort, direction
    )
    return employees


@router.get(
    "/departments",
    response_model=list[DepartmentResponse],
    summary="Department reference list",
)
async def list_departments(
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[DepartmentResponse]:
    result = await db.execute(select(Department).order_by(Department.id))
    return [
        DepartmentResponse(id=d.id, name=d.name, description=d.description)
        for d in result.scalars().all()
    ]


@router.get("/export", summary="Export the filtered employee list as CSV or XLSX")
async def export_employees(
    search: str | None = Query(default=None),
    department: str | None = Query(default=None),
    status_filter: str | None = Query(default=None, alias="status"),
    tab: str | None = Query(default=None),
    sort: str | None = Query(default="name"),
    direction: str = Query(default="asc", pattern="^(asc|desc)$"),
    fmt: str = Query(default="csv", alias="format", pattern="^(csv|xlsx)$"),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role(*STAFF_ROLES)),
) -> Response:
    employees, departments = await _filtered_employees(
        db, search, department, status_filter, tab, sort, direction
    )
    rows = [employee_row(e, departments.name_for(e.get("department"))) for e in employees]
    context = departments.name_for(department) if department and department != "all" else "all"
    filename = export_filename("employees", context, date.today(), fmt)
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}

    if fmt == "xlsx":
        return Response(
            content=to_xlsx(EMPLOYEE_EXPORT_HEADERS, rows, sheet_name="Employees"),
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers=headers,
        )
    return Response(
        content=to_csv(EMPLOYEE_EXPORT_HEADERS, rows),
        media_type="text/csv; charset=utf-8",
        headers=headers,
    )


@router.get("/{employee_id}", response_model=EmployeeResponse, summary="Get one employee")
async def get_employee(
    employee_id: int,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> EmployeeResponse:
    emp = await _get_employee_or_404(employee_id, db)
    return _to_response(emp, await _department_index(db))


@router.post(
    "/",
    response_model=EmployeeCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an employee and its login account (admin/hr)",
)
async def create_employee(
    body: EmployeeCreate,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin", "hr")),
) -> EmployeeCreateResponse:
    existing = await db.execute(select(Employee).where(Employee.email == body.email))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Employee with email '{body.email}' already exists",
        )

    if body.emp_id:
        taken = await db.execute(select(Employee.id).where(Employee.emp_id == body.emp_id))
        if taken.scalar_one_or_none() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Employee ID '{body.emp_id}' is already taken",
            )
        emp_id = body.emp_id
    else:
        emp_id = await _generate_emp_id(db)

    emp = Employee(
        emp_id=emp_id,
        name=body.name.upper(),
        email=body.email,
        mobile_number=body.mobile_number,
        location=body.location,
        designation=body.designation,
        status=body.status,
        is_active=body.is_active,
        department=body.department,
        position=body.position,
        role=body.role,
        hire_date=body.hireDate,
        kyc_status="pending",
    )
    db.add(emp)

    temp_password = _temp_password()
    result = await db.execute(select(User).where(User.email == body.email))
    user = result.scalar_one_or_none()
    if user is None:
        db.add(
            User(
                email=body.email,
                name=emp.name,
                password_hash=hash_password(temp_password),
                role=_account_role(body.role),
                is_active=True,
            )
        )
    else:
        user.name = emp.name
        user.password_hash = hash_password(temp_password)
        user.is_active = True

    await db.commit()
    await db.refresh(emp)
    logger.info("Created employee %s (%s)", emp.emp_id, emp.email)

    response = _to_response(emp, await _department_index(db))
    return EmployeeCreateResponse(**response.model_dump(), tempPassword=temp_password)


@router.put("/{employee_id}", response_model=EmployeeResponse, summary="Update an employee")
async def update_employee(
    employee_id: int,
    body: EmployeeUpdate,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin", "hr")),
) -> EmployeeResponse:
    emp = await _get_employee_or_404(employee_id, db)
    changes = body.model_dump(exclude_unset=True)

    result = await db.execute(select(User).where(User.email == emp.email))
    user = result.scalar_one_or_none()

    new_email = changes.get("email")
    if new_email == emp.email:
        new_email = None
    if new_email:
        clash = await db.execute(select(Employee.id).where(Employee.email == new_email))
        if clash.scalar_one_or_none() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Employee with email '{new_email}' already exists",
            )
        # the linked account is renamed along with the employee
        account = await db.execute(select(User.id).where(User.email == new_email))
        if user is not None and account.scalar_one_or_none() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"A user account with email '{new_email}' already exists",
            )

    new_emp_id = changes.get("emp_id")
    if new_emp_id and new_emp_id != emp.emp_id:
        taken = await db.execute(select(Employee.id).where(Employee.emp_id == new_emp_id))
        if taken.scalar_one_or_none() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Employee ID '{new_emp_id}' is already taken",
            )

    if changes.get("name"):
        changes["name"] = changes["name"].upper()
    if "hireDate" in changes:
        changes["hire_date"] = changes.pop("hireDate")
    for field, value in changes.items():
        setattr(emp, field, value)

    if user is not None:
        if changes.get("name"):
            user.name = changes["name"]
        if changes.get("role"):
            user.role = _account_role(changes["role"])
        if new_email:
            user.email = new_email

    await db.commit()
    await db.refresh(emp)
    return _to_response(emp, await _department_index(db))


@router.delete(
    "/{employee_id}",
    response_model=EmployeeDeleteResponse,
    summary="Delete an employee with its KYC, attendance and user account",
)
async def delete_employee(
    employee_id: int,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin", "hr")),
) -> EmployeeDeleteResponse:
    emp = await _get_employee_or_404(employee_id, db)

    kyc_count = (
        await db.execute(
            select(func.count(KycSubmission.id)).where(
                (KycSubmission.employee_id == emp.id) | (KycSubmission.email == emp.email)
            )
        )
    ).scalar_one()
    attendance_count = (
        await db.execute(select(func.count(Attendance.id)).where(Attendance.email == emp.email))
    ).scalar_one()

    await db.execute(
        delete(KycSubmission).where(
            (KycSubmission.employee_id == emp.id) | (KycSubmission.email == emp.email)
        )
    )
    await db.execute(delete(Attendance).where(Attendance.email == emp.email))

    result = await db.execute(select(User).where(User.email == emp.email))
    user = result.scalar_one_or_none()
    if user is not None:
        await db.delete(user)

    await db.delete(emp)
    await db.commit()
    logger.info(
        "Deleted employee %s: %d KYC, %d attendance, user account %s",
        emp.email, kyc_count, attendance_count, user is not None,
    )

    return EmployeeDeleteResponse(
        message="Employee, user account, and all associated records deleted successfully",
        deletionSummary=DeletionSummary(
            kycRecords=kyc_count,
            attendanceRecords=attendance_count,
            userAccount=user is not None,
        ),
    )

import datetime as dt
import re
from typing import Literal

from pydantic import BaseModel, field_validator

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

EmployeeStatus = Literal["Working", "Not Working"]


def _check_email(v: str) -> str:
    v = v.strip().lower()
    if not _EMAIL_RE.match(v):
        raise ValueError("Invalid email address")
    return v


class EmployeeCreate(BaseModel):
    name: str
    email: str
    emp_id: str | None = None
    mobile_number: str | None = None
    location: str | None = None
    designation: str | None = None
    status: EmployeeStatus = "Working"
    is_active: bool = True
    department: str | None = None
    position: str | None = None
    role: str | None = None
    hireDate: dt.date | None = None

    @field_validator("name")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field must not be empty")
        return v.strip()

    @field_validator("email")
    @classmethod
    def valid_email(cls, v: str) -> str:
        return _check_email(v)


class EmployeeUpdate(BaseModel):
    name: str | None = None
    email: str | None = None
    emp_id: str | None = None
    mobile_number: str | None = None
    location: str | None = None
    designation: str | None = None
    status: EmployeeStatus | None = None
    is_active: bool | None = None
    department: str | None = None
    position: str | None = None
    role: str | None = None
    hireDate: dt.date | None = None

    # Omitted fields keep their value; an explicit null cannot clear a required column
    @field_validator("name", "email", "status", "is_active")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v

    @field_validator("name")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field must not be empty")
        return v.strip()

    @field_validator("email")
    @classmethod
    def valid_email(cls, v: str) -> str:
        return _check_email(v)


class EmployeeResponse(BaseModel):
    id: int
    emp_id: str | None
    name: str
    email: str
    mobile_number: str | None
    location: str | None
    designation: str | None
    status: str
    is_active: bool
    department: str | None
    departmentName: str | None = None
    position: str | None
    role: str | None
    hireDate: dt.date | None
    kycStatus: str


class DepartmentResponse(BaseModel):
    id: str
    name: str
    description: str | None = None


class DeletionSummary(BaseModel):
    kycRecords: int
    attendanceRecords: int
    userAccount: bool


class EmployeeDeleteResponse(BaseModel):
    message: str
    deletionSummary: DeletionSummary


class EmployeeCreateResponse(EmployeeResponse):
    tempPassword: str | None = None

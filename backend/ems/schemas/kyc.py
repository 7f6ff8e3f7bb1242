import datetime as dt
from typing import Literal

from pydantic import BaseModel, field_validator

DocumentType = Literal["aadhaar", "pan", "passport", "driver_license"]
KycStatus = Literal["pending", "approved", "rejected"]


class KycSubmit(BaseModel):
    email: str
    fullName: str
    dob: dt.date
    address: str | None = None
    documentType: DocumentType
    documentNumber: str
    documents: list[str] = []

    @field_validator("fullName", "documentNumber")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field must not be empty")
        return v.strip()

    @field_validator("dob")
    @classmethod
    def not_in_future(cls, v: dt.date) -> dt.date:
        if v > dt.date.today():
            raise ValueError("Date of birth cannot be in the future")
        return v


class KycReview(BaseModel):
    status: KycStatus
    remarks: str | None = None


class KycResponse(BaseModel):
    id: int
    email: str
    employeeId: int | None
    fullName: str
    dob: dt.date
    address: str | None
    documentType: str
    documentNumber: str
    documents: list[str]
    status: str
    submittedAt: dt.datetime
    reviewedAt: dt.datetime | None
    reviewedBy: str | None
    remarks: str | None


class KycStatusResponse(BaseModel):
    email: str
    status: Literal["not_submitted", "pending", "approved", "rejected"]
    submission: KycResponse | None = None

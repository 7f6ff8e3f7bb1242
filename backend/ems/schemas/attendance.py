import datetime as dt

from pydantic import BaseModel, Field


class LocationPayload(BaseModel):
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    accuracy: float | None = None
    address: str | None = None


class CheckInRequest(LocationPayload):
    email: str
    name: str | None = None
    photoBase64: str | None = None


class CheckOutRequest(LocationPayload):
    email: str
    checkoutType: str | None = None
    photoBase64: str | None = None


class AttendanceResponse(BaseModel):
    id: int
    email: str
    name: str | None
    employeeId: str | None = None
    date: dt.date
    checkIn: dt.datetime | None
    checkOut: dt.datetime | None
    isLate: bool
    status: str
    notes: str | None = None
    checkoutType: str | None
    checkInLatitude: float | None
    checkInLongitude: float | None
    checkInAddress: str | None
    checkOutLatitude: float | None
    checkOutLongitude: float | None
    checkOutAddress: str | None
    checkInPhoto: str | None
    checkOutPhoto: str | None
    workingHours: str | None


class AutoCheckoutResult(BaseModel):
    message: str
    count: int

from datetime import datetime

from pydantic import BaseModel


class DeviceInfo(BaseModel):
    browser: str = "Unknown"
    os: str = "Unknown"
    device: str = "desktop"
    ip: str | None = None


class SessionResponse(BaseModel):
    id: int
    deviceInfo: DeviceInfo
    userAgent: str | None
    ipAddress: str | None
    lastActivity: datetime
    createdAt: datetime
    isCurrent: bool


class SessionList(BaseModel):
    sessions: list[SessionResponse]


class RevokeResult(BaseModel):
    success: bool = True
    message: str
    revokedCount: int

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

NotificationType = Literal["info", "success", "warning", "error"]


class NotificationResponse(BaseModel):
    id: int
    userId: int
    title: str
    message: str
    type: str
    isRead: bool
    readAt: datetime | None = None
    link: str | None = None
    eventId: int | None = None
    taskId: int | None = None
    createdAt: datetime | None = None


class NotificationFeedResponse(BaseModel):
    items: list[NotificationResponse]
    unreadCount: int


class UnreadCount(BaseModel):
    count: int


class NotificationCreate(BaseModel):
    title: str
    message: str
    type: NotificationType = "info"
    userId: int | None = None
    link: str | None = None


class MarkAllReadResult(BaseModel):
    success: bool = True
    count: int

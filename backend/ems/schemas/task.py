from datetime import datetime
from typing import Literal

from pydantic import BaseModel

TaskStatus = Literal["todo", "in-progress", "review", "completed"]
TaskPriority = Literal["low", "medium", "high", "urgent"]


class TaskCreate(BaseModel):
    title: str
    description: str | None = None
    priority: TaskPriority = "medium"
    assigneeEmail: str | None = None
    assigneeName: str | None = None
    dueDate: datetime | None = None


class TaskStatusUpdate(BaseModel):
    status: TaskStatus


class TaskResponse(BaseModel):
    id: int
    title: str
    description: str | None
    status: str
    priority: str
    assigneeEmail: str | None
    assigneeName: str | None
    createdBy: str | None
    createdAt: datetime
    dueDate: datetime | None
    completedAt: datetime | None

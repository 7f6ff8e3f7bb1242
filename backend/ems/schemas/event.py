from datetime import datetime
from typing import Literal

from pydantic import BaseModel, model_validator

EventType = Literal["meeting", "training", "holiday", "review"]


class EventCreate(BaseModel):
    title: str
    description: str | None = None
    type: EventType = "meeting"
    start: datetime
    end: datetime
    allDay: bool = False
    attendees: list[str] = []

    @model_validator(mode="after")
    def end_not_before_start(self):
        if self.end < self.start:
            raise ValueError("Event end must not be before its start")
        return self


class EventUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    type: EventType | None = None
    start: datetime | None = None
    end: datetime | None = None
    allDay: bool | None = None
    attendees: list[str] | None = None


class EventResponse(BaseModel):
    id: int
    title: str
    description: str | None
    type: str
    start: datetime
    end: datetime
    allDay: bool
    attendees: list[str]
    createdByEmail: str | None

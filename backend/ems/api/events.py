import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ems.api.notifications import notify
from ems.core.middleware import get_current_user
from ems.db.models import CalendarEvent, User
from ems.db.session import get_db
from ems.schemas.event import EventCreate, EventResponse, EventUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _to_response(ev: CalendarEvent) -> EventResponse:
    return EventResponse(
        id=ev.id,
        title=ev.title,
        description=ev.description,
        type=ev.type,
        start=_aware(ev.start),
        end=_aware(ev.end),
        allDay=ev.all_day,
        attendees=list(ev.attendees or []),
        createdByEmail=ev.created_by_email,
    )


async def _get_event_or_404(event_id: int, db: AsyncSession) -> CalendarEvent:
    ev = await db.get(CalendarEvent, event_id)
    if ev is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Event not found",
        )
    return ev


def _check_can_edit(ev: CalendarEvent, current_user: User) -> None:
    if current_user.role in ("admin", "hr", "manager"):
        return
    if ev.created_by_email != current_user.email:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the organizer can change this event",
        )


def _normalize_attendees(emails: list[str]) -> list[str]:
    seen: list[str] = []
    for email in emails:
        e = email.strip().lower()
        if e and e not in seen:
            seen.append(e)
    return seen


async def _notify_attendees(
    db: AsyncSession, ev: CalendarEvent, emails: list[str], organizer: User
) -> int:
    if not emails:
        return 0
    result = await db.execute(select(User).where(User.email.in_(emails)))
    count = 0
    for user in result.scalars().all():
        if user.id == organizer.id:
            continue
        notify(
            db,
            user,
            title=f"New event: {ev.title}",
            message=f"{organizer.name or organizer.email} invited you to '{ev.title}' "
                    f"on {_aware(ev.start).strftime('%Y-%m-%d %H:%M')} UTC",
            type="info",
            link="/calendar",
            event_id=ev.id,
        )
        count += 1
    return count


@router.get("/", response_model=list[EventResponse], summary="Events, optionally within a window")
async def list_events(
    start: datetime | None = Query(default=None, description="Only events ending at or after this instant"),
    end: datetime | None = Query(default=None, description="Only events starting at or before this instant"),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[EventResponse]:
    q = select(CalendarEvent)
    if start is not None:
        q = q.where(CalendarEvent.end >= start)
    if end is not None:
        q = q.where(CalendarEvent.start <= end)
    result = await db.execute(q.order_by(CalendarEvent.start))
    return [_to_response(ev) for ev in result.scalars().all()]


@router.get("/{event_id}", response_model=EventResponse, summary="Get one event")
async def get_event(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> EventResponse:
    return _to_response(await _get_event_or_404(event_id, db))


@router.post(
    "/",
    response_model=EventResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an event and notify its attendees",
)
async def create_event(
    body: EventCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> EventResponse:
    ev = CalendarEvent(
        title=body.title,
        description=body.description,
        type=body.type,
        start=body.start,
        end=body.end,
        all_day=body.allDay,
        attendees=_normalize_attendees(body.attendees),
        created_by_email=current_user.email,
    )
    db.add(ev)
    await db.flush()

    notified = await _notify_attendees(db, ev, ev.attendees, current_user)
    await db.commit()
    await db.refresh(ev)
    logger.info("Event %s created by %s, %d attendees notified", ev.id, current_user.email, notified)
    return _to_response(ev)


@router.put("/{event_id}", response_model=EventResponse, summary="Update an event")
async def update_event(
    event_id: int,
    body: EventUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> EventResponse:
    ev = await _get_event_or_404(event_id, db)
    _check_can_edit(ev, current_user)

    changes = body.model_dump(exclude_unset=True)
    new_start = changes.get("start") or ev.start
    new_end = changes.get("end") or ev.end
    if _aware(new_end) < _aware(new_start):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Event end must not be before its start",
        )

    added: list[str] = []
    if "attendees" in changes:
        attendees = _normalize_attendees(changes.pop("attendees") or [])
        added = [e for e in attendees if e not in (ev.attendees or [])]
        ev.attendees = attendees
    if "allDay" in changes:
        ev.all_day = changes.pop("allDay")
    for field, value in changes.items():
        setattr(ev, field, value)

    await _notify_attendees(db, ev, added, current_user)
    await db.commit()
    await db.refresh(ev)
    return _to_response(ev)


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete an event")
async def delete_event(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> None:
    ev = await _get_event_or_404(event_id, db)
    _check_can_edit(ev, current_user)
    await db.delete(ev)
    await db.commit()
    logger.info("Event %s deleted by %s", event_id, current_user.email)

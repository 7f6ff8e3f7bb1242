import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ems.core.middleware import get_current_user, require_role
from ems.db.models import Notification, User
from ems.db.session import get_db
from ems.schemas.notification import (
    MarkAllReadResult,
    NotificationCreate,
    NotificationFeedResponse,
    NotificationResponse,
    UnreadCount,
)
from ems.services.notification_feed import process_notifications

logger = logging.getLogger(__name__)

router = APIRouter()


def _aware(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_response(n: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=n.id,
        userId=n.user_id,
        title=n.title,
        message=n.message,
        type=n.type,
        isRead=n.is_read,
        readAt=_aware(n.read_at),
        link=n.link,
        eventId=n.event_id,
        taskId=n.task_id,
        createdAt=_aware(n.created_at),
    )


def notify(
    db: AsyncSession,
    user: User,
    title: str,
    message: str,
    type: str = "info",
    link: str | None = None,
    event_id: int | None = None,
    task_id: int | None = None,
) -> Notification:
    """Queue a notification for ``user`` on the session; caller commits."""
    n = Notification(
        user_id=user.id,
        user_email=user.email,
        title=title,
        message=message,
        type=type,
        link=link,
        event_id=event_id,
        task_id=task_id,
    )
    db.add(n)
    return n


@router.get(
    "/",
    response_model=list[NotificationResponse],
    summary="Notifications of the current user, newest first",
)
async def list_notifications(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[NotificationResponse]:
    q = select(Notification).where(Notification.user_id == current_user.id)
    if unread_only:
        q = q.where(Notification.is_read == False)  # noqa: E712
    q = q.order_by(Notification.created_at.desc(), Notification.id.desc())
    result = await db.execute(q.offset(offset).limit(limit))
    return [_to_response(n) for n in result.scalars().all()]


@router.get(
    "/feed",
    response_model=NotificationFeedResponse,
    summary="Display-ready feed: noise removed, deduplicated, newest first",
)
async def notification_feed(
    limit: int = Query(default=200, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> NotificationFeedResponse:
    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == current_user.id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
    )
    raw = [_to_response(n).model_dump() for n in result.scalars().all()]
    feed = process_notifications(raw)
    return NotificationFeedResponse(items=feed.items, unreadCount=feed.unread_count)


@router.get("/unread-count", response_model=UnreadCount, summary="Unread notification count")
async def unread_count(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UnreadCount:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == current_user.id,
            Notification.is_read == False,  # noqa: E712
        )
    )
    return UnreadCount(count=result.scalar_one())


@router.put("/read-all", response_model=MarkAllReadResult, summary="Mark all as read")
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MarkAllReadResult:
    result = await db.execute(
        update(Notification)
        .where(
            Notification.user_id == current_user.id,
            Notification.is_read == False,  # noqa: E712
        )
        .values(is_read=True, read_at=datetime.now(timezone.utc))
    )
    await db.commit()
    return MarkAllReadResult(count=result.rowcount or 0)


@router.put(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark one notification as read",
)
async def mark_read(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> NotificationResponse:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == current_user.id,
        )
    )
    n = result.scalar_one_or_none()
    if n is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )

    if not n.is_read:
        n.is_read = True
        n.read_at = datetime.now(timezone.utc)
        await db.commit()
        await db.refresh(n)
    return _to_response(n)


@router.post(
    "/",
    response_model=list[NotificationResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Send a notification to one user, or to everyone (admin/hr)",
)
async def create_notification(
    body: NotificationCreate,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin", "hr")),
) -> list[NotificationResponse]:
    if body.userId is not None:
        target = await db.get(User, body.userId)
        if target is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found",
            )
        recipients = [target]
    else:
        result = await db.execute(select(User).where(User.is_active == True))  # noqa: E712
        recipients = list(result.scalars().all())

    created = [
        notify(db, u, body.title, body.message, type=body.type, link=body.link)
        for u in recipients
    ]
    await db.commit()
    for n in created:
        await db.refresh(n)
    logger.info("Created %d notifications '%s'", len(created), body.title)
    return [_to_response(n) for n in created]

"""
Signed-in device sessions.

Every login opens a ``UserSession`` row whose random ``sid`` is embedded in
the access and refresh tokens. Revoking the row invalidates both tokens
on their next use, long before they would expire on their own.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ems.core.config import settings
from ems.db.models import UserSession

logger = logging.getLogger(__name__)

# Checked in order; the first hit wins (Edge and Opera also claim Chrome)
_BROWSERS = (
    ("Edg/", "Edge"),
    ("OPR/", "Opera"),
    ("Firefox/", "Firefox"),
    ("Chrome/", "Chrome"),
    ("Safari/", "Safari"),
    ("python-httpx", "httpx"),
)
_SYSTEMS = (
    ("Windows", "Windows"),
    ("Android", "Android"),
    ("iPhone", "iOS"),
    ("iPad", "iOS"),
    ("Mac OS X", "macOS"),
    ("Linux", "Linux"),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _first_match(user_agent: str, table: tuple[tuple[str, str], ...]) -> str:
    for needle, label in table:
        if needle in user_agent:
            return label
    return "Unknown"


def describe_device(user_agent: str | None, ip_address: str | None = None) -> dict:
    """Rough ``{browser, os, device, ip}`` summary of a User-Agent header."""
    ua = user_agent or ""
    mobile = any(marker in ua for marker in ("Mobile", "Android", "iPhone"))
    tablet = "iPad" in ua or "Tablet" in ua
    return {
        "browser": _first_match(ua, _BROWSERS),
        "os": _first_match(ua, _SYSTEMS),
        "device": "tablet" if tablet else "mobile" if mobile else "desktop",
        "ip": ip_address,
    }


def is_live(session: UserSession, now: datetime | None = None) -> bool:
    if not session.is_active:
        return False
    expires_at = _aware(session.expires_at)
    return expires_at is None or expires_at > (now or _utcnow())


async def open_session(
    db: AsyncSession,
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> UserSession:
    now = _utcnow()
    session = UserSession(
        user_id=user_id,
        sid=secrets.token_hex(16),
        device_info=describe_device(user_agent, ip_address),
        user_agent=user_agent,
        ip_address=ip_address,
        created_at=now,
        last_activity=now,
        expires_at=now + timedelta(minutes=settings.REFRESH_TOKEN_EXPIRE_MINUTES),
    )
    db.add(session)
    await db.flush()
    logger.info("Opened session %s for user %s", session.id, user_id)
    return session


async def get_live_session(db: AsyncSession, sid: str) -> UserSession | None:
    result = await db.execute(select(UserSession).where(UserSession.sid == sid))
    session = result.scalar_one_or_none()
    if session is None or not is_live(session):
        return None
    return session


def extend_session(session: UserSession) -> None:
    """Push expiry forward after a refresh; the caller commits."""
    now = _utcnow()
    session.last_activity = now
    session.expires_at = now + timedelta(minutes=settings.REFRESH_TOKEN_EXPIRE_MINUTES)


async def revoke_sessions(
    db: AsyncSession, user_id: int, keep_sid: str | None = None
) -> int:
    """Deactivate the user's active sessions, optionally sparing one."""
    stmt = (
        update(UserSession)
        .where(UserSession.user_id == user_id, UserSession.is_active.is_(True))
        .values(is_active=False)
    )
    if keep_sid is not None:
        stmt = stmt.where(UserSession.sid != keep_sid)
    result = await db.execute(stmt)
    await db.commit()
    logger.info("Revoked %d session(s) of user %s", result.rowcount, user_id)
    return result.rowcount

import logging
from datetime import datetime, timezone
from typing import Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ems.core.security import decode_token
from ems.db.models import User
from ems.db.session import get_db
from ems.services.sessions import get_live_session

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

STAFF_ROLES = ("admin", "hr", "manager")


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _access_payload(credentials: HTTPAuthorizationCredentials | None) -> dict:
    if credentials is None:
        raise _unauthorized()
    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise _unauthorized()
    if payload.get("type") != "access":
        raise _unauthorized()
    return payload


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the bearer access token to an active user.

    Tokens issued by login carry a ``sid``; once that session is revoked or
    expired the token stops working. The session id of the request is left
    on ``request.state.session_id`` (None for session-less tokens).
    """
    payload = _access_payload(credentials)

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise _unauthorized()

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise _unauthorized()

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )

    sid = payload.get("sid")
    request.state.session_id = sid
    if sid is not None:
        session = await get_live_session(db, sid)
        if session is None or session.user_id != user.id:
            logger.info("Rejected token of user %s: session revoked or expired", user.id)
            raise _unauthorized("Session has been revoked or has expired")
        session.last_activity = datetime.now(timezone.utc)
        await db.commit()

    return user


def require_role(*roles: str) -> Callable:
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {', '.join(roles)}",
            )
        return current_user

    return role_checker

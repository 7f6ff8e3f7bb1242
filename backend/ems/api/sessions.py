import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ems.core.middleware import get_current_user
from ems.db.models import User, UserSession
from ems.db.session import get_db
from ems.schemas.session import DeviceInfo, RevokeResult, SessionList, SessionResponse
from ems.services.sessions import is_live, revoke_sessions

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(session: UserSession, current_sid: str | None) -> SessionResponse:
    return SessionResponse(
        id=session.id,
        deviceInfo=DeviceInfo(**(session.device_info or {})),
        userAgent=session.user_agent,
        ipAddress=session.ip_address,
        lastActivity=session.last_activity,
        createdAt=session.created_at,
        isCurrent=current_sid is not None and session.sid == current_sid,
    )


@router.get("/me", response_model=SessionList, summary="Active sessions of the current user")
async def list_my_sessions(
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> SessionList:
    result = await db.execute(
        select(UserSession)
        .where(UserSession.user_id == current_user.id, UserSession.is_active.is_(True))
        .order_by(UserSession.last_activity.desc(), UserSession.id.desc())
    )
    current_sid = getattr(request.state, "session_id", None)
    return SessionList(
        sessions=[_to_response(s, current_sid) for s in result.scalars().all() if is_live(s)]
    )


@router.delete("/me/others", response_model=RevokeResult, summary="Sign out every other device")
async def revoke_other_sessions(
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> RevokeResult:
    count = await revoke_sessions(
        db, current_user.id, keep_sid=getattr(request.state, "session_id", None)
    )
    return RevokeResult(message="All other sessions revoked", revokedCount=count)


@router.delete("/me/all", response_model=RevokeResult, summary="Sign out everywhere")
async def revoke_all_sessions(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> RevokeResult:
    count = await revoke_sessions(db, current_user.id)
    return RevokeResult(message="All sessions revoked. Please log in again.", revokedCount=count)


@router.delete("/{session_id}", response_model=RevokeResult, summary="Revoke one session")
async def revoke_session(
    session_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> RevokeResult:
    session = await db.get(UserSession, session_id)
    if session is None or session.user_id != current_user.id or not session.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )
    session.is_active = False
    await db.commit()
    logger.info("User %s revoked session %s", current_user.id, session.id)
    return RevokeResult(message="Session revoked", revokedCount=1)

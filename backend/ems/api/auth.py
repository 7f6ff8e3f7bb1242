import logging

import pyotp
from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response, status
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ems.core.config import settings
from ems.core.middleware import get_current_user
from ems.core.security import (
    create_access_token,
    create_refresh_token,
    create_temp_token,
    decode_token,
    totp_qr_data_uri,
    verify_password,
)
from ems.db.models import User, UserSession
from ems.db.session import get_db
from ems.schemas.auth import (
    LoginRequest,
    TOTPCodeRequest,
    TOTPSetupResponse,
    TokenResponse,
    TwoFactorStatus,
)
from ems.services.sessions import extend_session, get_live_session, open_session

logger = logging.getLogger(__name__)

router = APIRouter()

_TEMP_TOKEN_COOKIE = "temp_token"
_REFRESH_TOKEN_COOKIE = "refresh_token"


def _get_temp_token(
    request: Request,
    temp_token: str | None = Cookie(default=None, alias=_TEMP_TOKEN_COOKIE),
) -> str | None:
    """Prefer Authorization Bearer (for SPA), fallback to cookie."""
    auth = request.headers.get("Authorization")
    if auth and auth.startswith("Bearer "):
        return auth[7:].strip()
    return temp_token


def _set_refresh_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=_REFRESH_TOKEN_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=False,
        max_age=settings.REFRESH_TOKEN_EXPIRE_MINUTES * 60,
    )


async def _issue_tokens(
    response: Response,
    user: User,
    db: AsyncSession,
    request: Request,
    session: UserSession | None = None,
) -> TokenResponse:
    if session is None:
        session = await open_session(
            db,
            user.id,
            user_agent=request.headers.get("user-agent"),
            ip_address=request.client.host if request.client else None,
        )
    else:
        extend_session(session)
    await db.commit()

    data = {"sub": str(user.id), "sid": session.sid}
    _set_refresh_cookie(response, create_refresh_token(data))
    return TokenResponse(access_token=create_access_token(data))


def _check_code(secret: str | None, code: str) -> None:
    if not secret or not pyotp.TOTP(secret).verify(code, valid_window=1):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid TOTP code",
        )


@router.post("/login", summary="Step 1: Password check")
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await db.execute(select(User).where(User.email == body.email.strip().lower()))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(body.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )

    if settings.DISABLE_2FA_FOR_TESTING or not user.two_factor_enabled:
        logger.info("User %s logged in", user.id)
        return (await _issue_tokens(response, user, db, request)).model_dump()

    temp = create_temp_token({"sub": str(user.id)})
    response.set_cookie(
        key=_TEMP_TOKEN_COOKIE,
        value=temp,
        httponly=True,
        samesite="lax",
        secure=False,
        max_age=600,
    )
    return {"requires_2fa": True, "temp_token": temp}


@router.post(
    "/2fa/verify",
    response_model=TokenResponse,
    summary="Step 2: Verify TOTP code and issue full tokens",
)
async def verify_2fa(
    body: TOTPCodeRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    temp_token: str | None = Depends(_get_temp_token),
) -> TokenResponse:
    user = await _user_from_temp_token(temp_token, db)
    _check_code(user.totp_secret, body.code)

    response.delete_cookie(_TEMP_TOKEN_COOKIE)
    logger.info("User %s passed 2FA", user.id)
    return await _issue_tokens(response, user, db, request)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh access token using HttpOnly cookie",
)
async def refresh_tokens(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    refresh_token: str | None = Cookie(default=None, alias=_REFRESH_TOKEN_COOKIE),
) -> TokenResponse:
    invalid = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Refresh token invalid or expired",
    )
    if not refresh_token:
        raise invalid

    try:
        payload = decode_token(refresh_token)
    except JWTError:
        raise invalid

    if payload.get("type") != "refresh":
        raise invalid

    user = await _user_from_sub(payload.get("sub"), db)
    if user is None or not user.is_active:
        raise invalid

    session = None
    sid = payload.get("sid")
    if sid is not None:
        session = await get_live_session(db, sid)
        if session is None or session.user_id != user.id:
            raise invalid

    return await _issue_tokens(response, user, db, request, session)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT, summary="Logout")
async def logout(
    response: Response,
    db: AsyncSession = Depends(get_db),
    refresh_token: str | None = Cookie(default=None, alias=_REFRESH_TOKEN_COOKIE),
) -> None:
    sid = _sid_from_refresh(refresh_token)
    if sid is not None:
        session = await get_live_session(db, sid)
        if session is not None:
            session.is_active = False
            await db.commit()
            logger.info("User %s logged out of session %s", session.user_id, session.id)
    response.delete_cookie(_REFRESH_TOKEN_COOKIE)
    response.delete_cookie(_TEMP_TOKEN_COOKIE)


@router.post(
    "/2fa/setup",
    response_model=TOTPSetupResponse,
    summary="Generate a TOTP secret and QR code for the current user",
)
async def setup_2fa(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TOTPSetupResponse:
    if current_user.two_factor_enabled:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="2FA is already enabled",
        )

    secret = pyotp.random_base32()
    current_user.totp_secret = secret
    await db.commit()

    return TOTPSetupResponse(
        qr_code_uri=totp_qr_data_uri(secret, current_user.email),
        secret=secret,
    )


@router.post(
    "/2fa/enable",
    response_model=TwoFactorStatus,
    summary="Confirm the pending secret with a TOTP code",
)
async def enable_2fa(
    body: TOTPCodeRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TwoFactorStatus:
    if current_user.totp_secret is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="2FA not configured. Call /2fa/setup first.",
        )
    _check_code(current_user.totp_secret, body.code)

    current_user.two_factor_enabled = True
    await db.commit()
    logger.info("User %s enabled 2FA", current_user.id)
    return TwoFactorStatus(enabled=True)


@router.post(
    "/2fa/disable",
    response_model=TwoFactorStatus,
    summary="Disable 2FA after confirming a TOTP code",
)
async def disable_2fa(
    body: TOTPCodeRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TwoFactorStatus:
    if not current_user.two_factor_enabled:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="2FA is not enabled",
        )
    _check_code(current_user.totp_secret, body.code)

    current_user.two_factor_enabled = False
    current_user.totp_secret = None
    await db.commit()
    logger.info("User %s disabled 2FA", current_user.id)
    return TwoFactorStatus(enabled=False)


@router.get("/2fa/status", response_model=TwoFactorStatus, summary="2FA status")
async def two_factor_status(
    current_user: User = Depends(get_current_user),
) -> TwoFactorStatus:
    return TwoFactorStatus(enabled=current_user.two_factor_enabled)


async def _user_from_sub(sub, db: AsyncSession) -> User | None:
    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        return None
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def _user_from_temp_token(
    temp_token: str | None, db: AsyncSession
) -> User:
    invalid = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Temp token missing or invalid. Please login first.",
    )
    if not temp_token:
        raise invalid

    try:
        payload = decode_token(temp_token)
    except JWTError:
        raise invalid

    if payload.get("type") != "temp":
        raise invalid

    user = await _user_from_sub(payload.get("sub"), db)
    if user is None:
        raise invalid
    return user


def _sid_from_refresh(refresh_token: str | None) -> str | None:
    if not refresh_token:
        return None
    try:
        payload = decode_token(refresh_token)
    except JWTError:
        return None
    if payload.get("type") != "refresh":
        return None
    return payload.get("sid")

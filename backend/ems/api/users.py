import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ems.core.middleware import get_current_user
from ems.core.security import hash_password, verify_password
from ems.db.models import User
from ems.db.session import get_db
from ems.schemas.user import PasswordChange, ProfileUpdate, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        phone=user.phone,
        bio=user.bio,
        is_active=user.is_active,
        two_factor_enabled=user.two_factor_enabled,
    )


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current authenticated user profile",
)
async def get_me(
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    return _to_response(current_user)


@router.patch(
    "/me",
    response_model=UserResponse,
    summary="Update name, phone or bio of the current user",
)
async def update_me(
    body: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(current_user, field, value)
    await db.commit()
    await db.refresh(current_user)
    return _to_response(current_user)


@router.post("/me/password", summary="Change password of the current user")
async def change_password(
    body: PasswordChange,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    if not verify_password(body.current_password, current_user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        )

    current_user.password_hash = hash_password(body.new_password)
    await db.commit()
    logger.info("User %s changed password", current_user.id)
    return {"message": "Password updated"}

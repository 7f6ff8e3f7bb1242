from typing import Literal

from pydantic import BaseModel, Field

Role = Literal["admin", "hr", "manager", "employee"]


class UserResponse(BaseModel):
    id: int
    email: str
    name: str | None
    role: str
    phone: str | None = None
    bio: str | None = None
    is_active: bool
    two_factor_enabled: bool

    model_config = {"from_attributes": True}


class ProfileUpdate(BaseModel):
    name: str | None = None
    phone: str | None = None
    bio: str | None = None


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)

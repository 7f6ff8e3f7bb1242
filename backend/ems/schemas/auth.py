from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TwoFactorChallenge(BaseModel):
    requires_2fa: bool = True
    temp_token: str


class TOTPSetupResponse(BaseModel):
    qr_code_uri: str
    secret: str


class TOTPCodeRequest(BaseModel):
    code: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$")


class TwoFactorStatus(BaseModel):
    enabled: bool

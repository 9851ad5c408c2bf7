from typing import Literal, Optional

from pydantic import BaseModel, field_validator

from app.auth.permissions import Role
from app.models.contact import check_password


class SignInPayload(BaseModel):
    email: str
    password: str


class PasswordResetRequest(BaseModel):
    email: str


class PasswordResetConfirm(BaseModel):
    token: str
    password: str

    @field_validator("password")
    @classmethod
    def _password(cls, value: str) -> str:
        return check_password(value)


class MfaCode(BaseModel):
    code: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    aal: str
    mfa: Optional[Literal["enroll", "challenge"]] = None


class SessionIdentity(BaseModel):
    user_id: str
    email: Optional[str] = None
    role: Optional[Role] = None
    can_manage_crud: bool = False
    aal: str
    mfa_required: bool = False


class MfaEnrollment(BaseModel):
    secret: str
    otpauth_uri: str

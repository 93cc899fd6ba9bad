import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from utils.password_policy import check_password_policy

USERNAME_PATTERN = re.compile(r'^[A-Za-z0-9_.-]{3,30}$')


class RegisterRequest(BaseModel):
    email: EmailStr
    username: str
    password: str

    @field_validator('username')
    @classmethod
    def validate_username(cls, value):
        value = value.strip()
        if not USERNAME_PATTERN.match(value):
            raise ValueError('Username must be 3-30 characters: letters, digits, ".", "_" or "-"')
        return value

    @field_validator('password')
    @classmethod
    def validate_password(cls, value):
        return check_password_policy(value)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)
    remember_me: bool = False


class UserOut(BaseModel):
    id: int
    email: str
    username: str
    email_verified: bool
    verified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut


class MessageResponse(BaseModel):
    message: str


class ResendVerificationResponse(MessageResponse):
    # sends left in the current hour
    remaining: int


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    code: str
    new_password: str

    @field_validator('code')
    @classmethod
    def validate_code(cls, value):
        value = value.strip()
        if len(value) != 6 or not value.isdigit():
            raise ValueError('must be a 6-digit code')
        return value

    @field_validator('new_password')
    @classmethod
    def validate_password(cls, value):
        return check_password_policy(value)


class VerifyEmailRequest(BaseModel):
    token: str

    @field_validator('token')
    @classmethod
    def validate_token(cls, value):
        value = value.strip()
        if not value:
            raise ValueError('Verification token cannot be empty')
        return value


class VerifiedUser(BaseModel):
    id: int
    email: str
    username: str


class VerifyEmailResponse(BaseModel):
    message: str
    user: VerifiedUser


class VerificationStatus(BaseModel):
    email_verified: bool
    verified_at: Optional[datetime] = None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str

    @field_validator('new_password')
    @classmethod
    def validate_password(cls, value):
        return check_password_policy(value)


class RevokedResponse(BaseModel):
    message: str
    revoked: int

"""Pydantic schemas for registration, Google sign-in and email verification."""

import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

_EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
)
_PASSWORD_CLASSES = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


def validate_email_address(v: str) -> str:
    # No case folding: addresses are matched byte-for-byte.
    if not _EMAIL_PATTERN.match(v):
        raise ValueError("Please enter a valid email address")
    return v


class EmailInput(BaseModel):
    email: str = Field(..., max_length=255)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return validate_email_address(v)


class RegisterUserRequest(BaseModel):
    email: str = Field(..., max_length=255)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=8, max_length=256)
    phone_number: str | None = Field(None, max_length=20)
    marketing_emails: bool | None = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return validate_email_address(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if not _PASSWORD_CLASSES.match(v):
            raise ValueError(
                "Password must contain at least one uppercase letter, "
                "one lowercase letter, and one number"
            )
        return v


class GoogleSignInRequest(BaseModel):
    google_id: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255)
    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    email_verified: bool = True

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return validate_email_address(v)


class VerifyEmailRequest(BaseModel):
    email: str = Field(..., max_length=255)
    verification_code: str = Field(..., min_length=6, max_length=6)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return validate_email_address(v)


class UserResponse(BaseModel):
    """Public view of a user. The password digest is never exposed."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str
    last_name: str
    google_id: str | None
    phone_number: str | None
    is_email_verified: bool
    created_at: datetime
    updated_at: datetime


class AuthResponse(BaseModel):
    user: UserResponse
    token: str | None = None
    is_new_user: bool


class EmailAvailabilityResponse(BaseModel):
    available: bool
    suggestions: list[str] | None = None


class StatusResponse(BaseModel):
    success: bool
    message: str

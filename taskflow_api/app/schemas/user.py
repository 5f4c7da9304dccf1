"""
Pydantic models for users and authentication payloads.

Passwords are accepted on input only; ``UserRead`` never carries them.
Emails are normalised to lowercase so lookups, uniqueness and the
forgot‑password rate limit all key on the same value.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


def _normalise_email(value: str) -> str:
    value = value.strip().lower()
    if "@" not in value or value.startswith("@") or value.endswith("@"):
        raise ValueError("Invalid email address")
    return value


class UserBase(BaseModel):
    email: str = Field(..., max_length=254)
    full_name: Optional[str] = Field(None, max_length=200)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalise_email(v)


class UserCreate(UserBase):
    """Schema for registering a user.

    The first registered user becomes the super administrator; everyone
    else gets the plain ``user`` role (see ``UserService.create_user``).
    """

    password: str = Field(..., min_length=8, max_length=256)


class UserRead(UserBase):
    id: int
    role_id: int
    disabled: bool = False

    model_config = {"from_attributes": True}


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalise_email(v)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class ForgotPasswordRequest(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalise_email(v)


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=16)
    password: str = Field(..., min_length=8, max_length=256)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=256)

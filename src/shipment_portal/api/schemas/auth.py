"""Pydantic schemas for authentication and user management.

Account payloads use camelCase keys (``fullName``, ``accessToken``) on the
wire; Python code uses snake_case attribute names.
"""

from __future__ import annotations

# NOTE: datetime and UUID must remain at runtime for Pydantic validation
from datetime import datetime  # noqa: TC003
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict, EmailStr
from pydantic.alias_generators import to_camel

from shipment_portal.db.models.base import UserRole  # noqa: TC001


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -----------------------------------------------------------------------------
# Requests
# -----------------------------------------------------------------------------


class LoginRequest(CamelModel):
    username: str | None = None
    password: str | None = None
    remember_me: bool = False


class RefreshRequest(CamelModel):
    refresh_token: str | None = None


class LogoutRequest(CamelModel):
    refresh_token: str | None = None


class ForgotPasswordRequest(CamelModel):
    email: str | None = None


class ResetPasswordRequest(CamelModel):
    token: str | None = None
    new_password: str | None = None


class ChangePasswordRequest(CamelModel):
    current_password: str | None = None
    new_password: str | None = None


class CreateUserRequest(CamelModel):
    username: str | None = None
    email: EmailStr | None = None
    role: str | None = None
    full_name: str | None = None
    password: str | None = None


class UpdateUserRequest(CamelModel):
    email: EmailStr | None = None
    role: str | None = None
    full_name: str | None = None
    is_active: bool | None = None


# -----------------------------------------------------------------------------
# Responses
# -----------------------------------------------------------------------------


class UserResponse(CamelModel):
    """A user account. The password hash is never included."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    user_id: UUID
    username: str
    email: str
    role: UserRole
    full_name: str | None = None
    is_active: bool
    must_change_password: bool
    last_login_at: datetime | None = None
    created_at: datetime


class LoginResponse(CamelModel):
    user: UserResponse
    access_token: str
    refresh_token: str


class TokenPairResponse(CamelModel):
    access_token: str
    refresh_token: str


class CurrentUserResponse(CamelModel):
    user: UserResponse


class UserMessageResponse(CamelModel):
    message: str
    user: UserResponse


class CreatedUserResponse(CamelModel):
    message: str
    user: UserResponse
    temporary_password: str


class PasswordResetResponse(CamelModel):
    message: str
    temporary_password: str


class UserPagination(CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int


class UserListResponse(CamelModel):
    users: list[UserResponse]
    pagination: UserPagination

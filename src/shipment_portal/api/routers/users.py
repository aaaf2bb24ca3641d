"""User management API router. Admin only."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, Query, status

from shipment_portal.api.dependencies import UserService
from shipment_portal.api.middleware.auth import AuthenticatedUser, require_capability
from shipment_portal.api.schemas.auth import (
    CreatedUserResponse,
    CreateUserRequest,
    PasswordResetResponse,
    UpdateUserRequest,
    UserListResponse,
    UserMessageResponse,
    UserPagination,
    UserResponse,
)
from shipment_portal.api.schemas.shipments import MessageResponse
from shipment_portal.services.authz import Action

router = APIRouter(
    prefix="/users",
    tags=["users"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Admin access required"},
    },
)

AdminUser = Annotated[AuthenticatedUser, Depends(require_capability(Action.MANAGE_USERS))]


@router.get("", response_model=UserListResponse, summary="List users")
async def list_users(
    admin: AdminUser,
    service: UserService,
    role: Annotated[str | None, Query()] = None,
    search: Annotated[str | None, Query(max_length=200)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> UserListResponse:
    result = await service.list_users(
        admin.to_actor(), role=role, search=search, page=page, limit=limit
    )
    return UserListResponse(
        users=[UserResponse.model_validate(u) for u in result.items],
        pagination=UserPagination(
            total=result.total,
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
        ),
    )


@router.post(
    "",
    response_model=CreatedUserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user",
    description="Returns the temporary password once; it is also mailed to the user.",
)
async def create_user(
    body: CreateUserRequest,
    admin: AdminUser,
    service: UserService,
) -> CreatedUserResponse:
    created = await service.create_user(
        admin.to_actor(),
        username=body.username,
        email=body.email,
        role=body.role,
        full_name=body.full_name,
        password=body.password,
    )
    return CreatedUserResponse(
        message="User created successfully",
        user=UserResponse.model_validate(created.user),
        temporary_password=created.temporary_password,
    )


@router.put("/{user_id}", response_model=UserMessageResponse, summary="Update a user")
async def update_user(
    user_id: UUID,
    body: UpdateUserRequest,
    admin: AdminUser,
    service: UserService,
) -> UserMessageResponse:
    user = await service.update_user(
        admin.to_actor(),
        user_id,
        email=body.email,
        role=body.role,
        full_name=body.full_name,
        is_active=body.is_active,
    )
    return UserMessageResponse(
        message="User updated successfully", user=UserResponse.model_validate(user)
    )


@router.delete("/{user_id}", response_model=MessageResponse, summary="Delete a user")
async def delete_user(user_id: UUID, admin: AdminUser, service: UserService) -> MessageResponse:
    await service.delete_user(admin.to_actor(), user_id)
    return MessageResponse(message="User deleted successfully")


@router.post(
    "/{user_id}/reset-password",
    response_model=PasswordResetResponse,
    summary="Issue a new temporary password",
)
async def reset_user_password(
    user_id: UUID, admin: AdminUser, service: UserService
) -> PasswordResetResponse:
    temporary_password = await service.reset_user_password(admin.to_actor(), user_id)
    return PasswordResetResponse(
        message="Password reset successfully. Email sent to user.",
        temporary_password=temporary_password,
    )

"""Authentication API router.

Login issues an access/refresh token pair; refresh rotates the pair. Password
reset is a two-step flow: forgot-password mails a single-use token and
reset-password consumes it.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request

from shipment_portal.api.dependencies import (
    CurrentActor,
    IdentityServiceDep,
    client_ip,
)
from shipment_portal.api.middleware.auth import AuthenticatedUser, optional_authenticated_user
from shipment_portal.api.schemas.auth import (
    ChangePasswordRequest,
    CurrentUserResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    RefreshRequest,
    ResetPasswordRequest,
    TokenPairResponse,
    UserResponse,
)
from shipment_portal.api.schemas.shipments import MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse, summary="Log in with username and password")
async def login(
    body: LoginRequest,
    request: Request,
    service: IdentityServiceDep,
) -> LoginResponse:
    result = await service.login(
        body.username,
        body.password,
        remember_me=body.remember_me,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return LoginResponse(
        user=UserResponse.model_validate(result.user),
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
    )


@router.post("/refresh", response_model=TokenPairResponse, summary="Rotate the token pair")
async def refresh(body: RefreshRequest, service: IdentityServiceDep) -> TokenPairResponse:
    tokens = await service.refresh(body.refresh_token)
    return TokenPairResponse(access_token=tokens.access_token, refresh_token=tokens.refresh_token)


@router.post("/logout", response_model=MessageResponse, summary="Revoke a refresh token")
async def logout(
    service: IdentityServiceDep,
    user: Annotated[AuthenticatedUser | None, Depends(optional_authenticated_user)],
    body: LogoutRequest | None = None,
) -> MessageResponse:
    await service.logout(
        user.to_actor() if user else None,
        body.refresh_token if body else None,
    )
    return MessageResponse(message="Logged out successfully")


@router.post("/forgot-password", response_model=MessageResponse, summary="Request a reset link")
async def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    service: IdentityServiceDep,
) -> MessageResponse:
    message = await service.forgot_password(
        body.email,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return MessageResponse(message=message)


@router.post("/reset-password", response_model=MessageResponse, summary="Set a new password")
async def reset_password(
    body: ResetPasswordRequest,
    request: Request,
    service: IdentityServiceDep,
) -> MessageResponse:
    await service.reset_password(
        body.token,
        body.new_password,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return MessageResponse(message="Password reset successful")


@router.post("/change-password", response_model=MessageResponse, summary="Change own password")
async def change_password(
    body: ChangePasswordRequest,
    actor: CurrentActor,
    service: IdentityServiceDep,
) -> MessageResponse:
    await service.change_password(actor, body.current_password, body.new_password)
    return MessageResponse(message="Password changed successfully")


@router.get("/me", response_model=CurrentUserResponse, summary="Current user")
async def me(actor: CurrentActor, service: IdentityServiceDep) -> CurrentUserResponse:
    user = await service.get_user(actor.user_id)
    return CurrentUserResponse(user=UserResponse.model_validate(user))

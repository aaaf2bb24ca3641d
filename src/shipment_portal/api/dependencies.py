"""Shared FastAPI dependencies.

Long-lived clients (notifier, document store, token service) are built once
in create_app and kept on ``app.state``. Services are built per request around
the request's database session.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shipment_portal.api.middleware.auth import AuthenticatedUser, require_authenticated_user
from shipment_portal.core.config import Settings
from shipment_portal.services.audit_log import AuditLogService
from shipment_portal.services.authz import Actor
from shipment_portal.services.documents import DocumentService
from shipment_portal.services.email import ShipmentNotifier
from shipment_portal.services.identity import IdentityService, TokenService
from shipment_portal.services.lifecycle import ShipmentLifecycleService
from shipment_portal.services.storage import DocumentStore
from shipment_portal.services.users import UserManagementService


async def get_db_session() -> AsyncIterator[AsyncSession]:
    """Yield a session for the duration of one request."""
    from shipment_portal.db import get_async_session

    async with get_async_session() as session:
        yield session


DbSession = Annotated[AsyncSession, Depends(get_db_session)]


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_notifier(request: Request) -> ShipmentNotifier:
    return request.app.state.notifier


def get_document_store(request: Request) -> DocumentStore:
    return request.app.state.document_store


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


AppSettings = Annotated[Settings, Depends(get_app_settings)]
Notifier = Annotated[ShipmentNotifier, Depends(get_notifier)]
Store = Annotated[DocumentStore, Depends(get_document_store)]
Tokens = Annotated[TokenService, Depends(get_token_service)]


def get_current_actor(
    user: Annotated[AuthenticatedUser, Depends(require_authenticated_user)],
) -> Actor:
    return user.to_actor()


CurrentActor = Annotated[Actor, Depends(get_current_actor)]


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


def get_audit_service(db: DbSession) -> AuditLogService:
    return AuditLogService(db)


def get_lifecycle_service(
    db: DbSession, notifier: Notifier, store: Store
) -> ShipmentLifecycleService:
    return ShipmentLifecycleService(
        db, audit=AuditLogService(db), notifier=notifier, storage=store
    )


def get_document_service(db: DbSession, store: Store, settings: AppSettings) -> DocumentService:
    return DocumentService(
        db, storage=store, audit=AuditLogService(db), upload_settings=settings.uploads
    )


def get_identity_service(
    db: DbSession, tokens: Tokens, notifier: Notifier, settings: AppSettings
) -> IdentityService:
    return IdentityService(
        db,
        tokens=tokens,
        audit=AuditLogService(db),
        settings=settings.auth,
        notifier=notifier,
    )


def get_user_service(
    db: DbSession, notifier: Notifier, settings: AppSettings
) -> UserManagementService:
    return UserManagementService(
        db,
        audit=AuditLogService(db),
        notifier=notifier,
        bcrypt_rounds=settings.auth.bcrypt_rounds,
    )


AuditService = Annotated[AuditLogService, Depends(get_audit_service)]
LifecycleService = Annotated[ShipmentLifecycleService, Depends(get_lifecycle_service)]
DocumentsService = Annotated[DocumentService, Depends(get_document_service)]
IdentityServiceDep = Annotated[IdentityService, Depends(get_identity_service)]
UserService = Annotated[UserManagementService, Depends(get_user_service)]


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None

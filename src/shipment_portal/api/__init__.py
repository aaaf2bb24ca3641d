"""Shipment portal API service.

FastAPI application providing:
- Token authentication and password flows
- Admin user management
- The shipment lifecycle (create, edit, approve, reject, request changes, delete)
- Document attachments stored in an S3-compatible bucket
- Audit trail queries

This module provides the app factory used by the ASGI entry point and tests.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shipment_portal.api.middleware import (
    ErrorHandlerMiddleware,
    RequestIDMiddleware,
    TokenAuthMiddleware,
    register_exception_handlers,
)
from shipment_portal.api.routers import (
    audit_logs_router,
    auth_router,
    documents_router,
    shipments_router,
    users_router,
)
from shipment_portal.services.email import ShipmentNotifier
from shipment_portal.services.identity import TokenService
from shipment_portal.services.storage import DocumentStore, StorageError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from shipment_portal.core.config import Settings

logger = logging.getLogger(__name__)

API_TITLE = "Shipment Portal API"
API_DESCRIPTION = """
Role-based shipment tracking.

## Namespaces

- **/api/auth/** - Login, token refresh, password reset
- **/api/users/** - User management (admin)
- **/api/shipments/** - Shipment lifecycle and dashboard
- **/api/documents/** - Shipment documents
- **/api/audit-logs/** - Audit trail (admin)
"""


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Args:
        settings: Optional Settings instance. Defaults to the cached settings
            loaded from the environment.

    Returns:
        Configured FastAPI application.

    Example:
        app = create_app()

        # For testing
        app = create_app(Settings(environment="dev", debug=True))
    """
    if settings is None:
        from shipment_portal.core.settings import get_settings

        settings = get_settings()

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=settings.app_version,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=_lifespan,
    )

    app.state.settings = settings
    app.state.notifier = ShipmentNotifier(
        settings.smtp,
        frontend_url=settings.frontend_url,
        app_name=settings.app_name,
    )
    app.state.document_store = DocumentStore.from_settings(settings.s3)
    app.state.token_service = TokenService(settings.auth)

    register_exception_handlers(app)
    _add_middleware(app, settings)
    _include_routers(app)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    logger.info("Shipment portal API created (version=%s)", settings.app_version)
    return app


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    store: DocumentStore = app.state.document_store
    try:
        await asyncio.to_thread(store.ensure_bucket)
    except StorageError as e:
        # Uploads fail until the bucket is reachable; the API still serves reads
        logger.error("Document bucket unavailable at startup: %s", e.message)

    yield

    from shipment_portal.db import close_engine

    await close_engine()
    logger.info("Database engine closed")


def _add_middleware(app: FastAPI, settings: Settings) -> None:
    # Last added is outermost: CORS -> request id -> errors -> auth -> routes
    app.add_middleware(TokenAuthMiddleware)
    app.add_middleware(ErrorHandlerMiddleware, debug=settings.debug)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )


def _include_routers(app: FastAPI) -> None:
    app.include_router(auth_router, prefix="/api")
    app.include_router(users_router, prefix="/api")
    app.include_router(shipments_router, prefix="/api")
    app.include_router(documents_router, prefix="/api")
    app.include_router(audit_logs_router, prefix="/api")

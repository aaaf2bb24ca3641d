"""Pytest configuration and shared fixtures.

Unit tests use mock database sessions (see tests/factories.py). API tests run
the real app in-process through httpx's ASGI transport, with FastAPI
dependency overrides replacing the services and the current user.
"""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from shipment_portal.api import create_app
from shipment_portal.api.dependencies import (
    get_audit_service,
    get_document_service,
    get_identity_service,
    get_lifecycle_service,
    get_user_service,
)
from shipment_portal.api.middleware.auth import AuthenticatedUser, require_authenticated_user
from shipment_portal.core.config import Environment, Settings
from shipment_portal.db.models.base import UserRole


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
@pytest.fixture
def settings() -> Settings:
    """Development settings with SMTP disabled and cheap bcrypt."""
    return Settings(
        environment=Environment.DEV,
        debug=False,
        smtp={"enabled": False},
        auth={"bcrypt_rounds": 4},
    )


# ---------------------------------------------------------------------------
# Authenticated users, one per role
# ---------------------------------------------------------------------------
def _auth_user(role: UserRole) -> AuthenticatedUser:
    return AuthenticatedUser(
        user_id=uuid4(),
        username=f"{role.value}-user",
        email=f"{role.value}@example.com",
        role=role,
        ip_address="127.0.0.1",
        user_agent="pytest",
    )


@pytest.fixture
def admin_user() -> AuthenticatedUser:
    return _auth_user(UserRole.ADMIN)


@pytest.fixture
def accounts_user() -> AuthenticatedUser:
    return _auth_user(UserRole.ACCOUNTS)


@pytest.fixture
def clearance_user() -> AuthenticatedUser:
    return _auth_user(UserRole.CLEARANCE_MANAGER)


# ---------------------------------------------------------------------------
# Service doubles
# ---------------------------------------------------------------------------
def _service_mock() -> MagicMock:
    service = MagicMock()
    for name in (
        "create_shipment",
        "update_shipment",
        "delete_shipment",
        "approve",
        "reject",
        "request_changes",
        "get_shipment",
        "list_shipments",
        "get_statistics",
        "upload",
        "list_for_shipment",
        "download",
        "delete",
        "login",
        "refresh",
        "logout",
        "forgot_password",
        "reset_password",
        "change_password",
        "get_user",
        "list_users",
        "create_user",
        "update_user",
        "delete_user",
        "reset_user_password",
        "query",
    ):
        setattr(service, name, AsyncMock())
    return service


@pytest.fixture
def lifecycle_service() -> MagicMock:
    return _service_mock()


@pytest.fixture
def document_service() -> MagicMock:
    return _service_mock()


@pytest.fixture
def identity_service() -> MagicMock:
    return _service_mock()


@pytest.fixture
def user_service() -> MagicMock:
    return _service_mock()


@pytest.fixture
def audit_service() -> MagicMock:
    return _service_mock()


# ---------------------------------------------------------------------------
# App and client
# ---------------------------------------------------------------------------
@pytest.fixture
def test_app(
    settings,
    lifecycle_service,
    document_service,
    identity_service,
    user_service,
    audit_service,
):
    """Create a test FastAPI application with every service replaced by a mock."""
    app = create_app(settings)
    app.dependency_overrides[get_lifecycle_service] = lambda: lifecycle_service
    app.dependency_overrides[get_document_service] = lambda: document_service
    app.dependency_overrides[get_identity_service] = lambda: identity_service
    app.dependency_overrides[get_user_service] = lambda: user_service
    app.dependency_overrides[get_audit_service] = lambda: audit_service
    return app


@pytest.fixture
def login_as(test_app):
    """Make the app treat every request as coming from the given user."""

    def _login(user: AuthenticatedUser) -> AuthenticatedUser:
        test_app.dependency_overrides[require_authenticated_user] = lambda: user
        return user

    return _login


@pytest.fixture
async def api_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing the API.

    Uses httpx with ASGI transport for in-process testing.
    """
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

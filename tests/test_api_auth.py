"""Tests for authentication, user management, and audit log endpoints.

Tests cover:
- Login, refresh, and password endpoints (camelCase bodies)
- Bearer tokens decoded by the auth middleware
- Admin-only gating of /api/users and /api/audit-logs
"""

from datetime import UTC, datetime
from uuid import uuid4

import pytest

from shipment_portal.db.models.base import UserRole
from shipment_portal.services.audit_log import AuditLogEntry
from shipment_portal.services.errors import AuthenticationError, DuplicateError, LockedError
from shipment_portal.services.identity import FORGOT_PASSWORD_MESSAGE, LoginResult
from shipment_portal.services.users import CreatedUser, UserPage
from tests.factories import make_user

# -----------------------------------------------------------------------------
# Authentication
# -----------------------------------------------------------------------------


class TestLogin:
    """Tests for POST /api/auth/login."""

    @pytest.mark.asyncio
    async def test_login_returns_tokens(self, api_client, test_app, identity_service):
        user = make_user(UserRole.ACCOUNTS, username="accounts")
        tokens = test_app.state.token_service.create_token_pair(user)
        identity_service.login.return_value = LoginResult(user=user, tokens=tokens)

        response = await api_client.post(
            "/api/auth/login",
            json={"username": "accounts", "password": "S3cret!pass", "rememberMe": True},
            headers={"User-Agent": "pytest-agent"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["accessToken"] == tokens.access_token
        assert data["refreshToken"] == tokens.refresh_token
        assert data["user"]["username"] == "accounts"
        assert data["user"]["role"] == "accounts"
        assert "passwordHash" not in data["user"]

        call = identity_service.login.await_args
        assert call.args == ("accounts", "S3cret!pass")
        assert call.kwargs["remember_me"] is True
        assert call.kwargs["user_agent"] == "pytest-agent"

    @pytest.mark.asyncio
    async def test_bad_credentials(self, api_client, identity_service):
        identity_service.login.side_effect = AuthenticationError("Invalid credentials")

        response = await api_client.post(
            "/api/auth/login", json={"username": "x", "password": "y"}
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_locked_account(self, api_client, identity_service):
        until = datetime(2026, 10, 19, 12, 15, tzinfo=UTC)
        identity_service.login.side_effect = LockedError(
            "Account is temporarily locked", locked_until=until
        )

        response = await api_client.post(
            "/api/auth/login", json={"username": "x", "password": "y"}
        )

        assert response.status_code == 423
        data = response.json()
        assert data["code"] == "account_locked"
        assert data["lockedUntil"] == until.isoformat()


class TestTokens:
    """Tests for bearer tokens and token endpoints."""

    @pytest.mark.asyncio
    async def test_me_with_bearer_token(self, api_client, test_app, identity_service):
        user = make_user(UserRole.CLEARANCE_MANAGER)
        token = test_app.state.token_service.create_access_token(user)
        identity_service.get_user.return_value = user

        response = await api_client.get(
            "/api/auth/me", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 200
        assert response.json()["user"]["userId"] == str(user.user_id)
        identity_service.get_user.assert_awaited_once_with(user.user_id)

    @pytest.mark.asyncio
    async def test_refresh_token_not_accepted_as_access_token(self, api_client, test_app):
        pair = test_app.state.token_service.create_token_pair(make_user())

        response = await api_client.get(
            "/api/auth/me", headers={"Authorization": f"Bearer {pair.refresh_token}"}
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid or expired token"

    @pytest.mark.asyncio
    async def test_refresh(self, api_client, test_app, identity_service):
        pair = test_app.state.token_service.create_token_pair(make_user())
        identity_service.refresh.return_value = pair

        response = await api_client.post("/api/auth/refresh", json={"refreshToken": "old"})

        assert response.status_code == 200
        assert response.json() == {
            "accessToken": pair.access_token,
            "refreshToken": pair.refresh_token,
        }
        identity_service.refresh.assert_awaited_once_with("old")

    @pytest.mark.asyncio
    async def test_logout_without_session(self, api_client, identity_service):
        response = await api_client.post("/api/auth/logout", json={"refreshToken": "r"})

        assert response.status_code == 200
        assert response.json() == {"message": "Logged out successfully"}
        identity_service.logout.assert_awaited_once_with(None, "r")


class TestPasswords:
    @pytest.mark.asyncio
    async def test_forgot_password_is_uniform(self, api_client, identity_service):
        identity_service.forgot_password.return_value = FORGOT_PASSWORD_MESSAGE

        response = await api_client.post(
            "/api/auth/forgot-password", json={"email": "nobody@example.com"}
        )

        assert response.status_code == 200
        assert response.json() == {"message": FORGOT_PASSWORD_MESSAGE}

    @pytest.mark.asyncio
    async def test_reset_password(self, api_client, identity_service):
        response = await api_client.post(
            "/api/auth/reset-password", json={"token": "t0k", "newPassword": "N3w!password"}
        )

        assert response.status_code == 200
        assert identity_service.reset_password.await_args.args == ("t0k", "N3w!password")

    @pytest.mark.asyncio
    async def test_change_password_requires_login(self, api_client, identity_service):
        response = await api_client.post(
            "/api/auth/change-password",
            json={"currentPassword": "a", "newPassword": "b"},
        )

        assert response.status_code == 401
        identity_service.change_password.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_change_password(self, api_client, login_as, clearance_user, identity_service):
        login_as(clearance_user)

        response = await api_client.post(
            "/api/auth/change-password",
            json={"currentPassword": "Old!pass123", "newPassword": "N3w!password"},
        )

        assert response.status_code == 200
        actor, current, new = identity_service.change_password.await_args.args
        assert actor.user_id == clearance_user.user_id
        assert (current, new) == ("Old!pass123", "N3w!password")


# -----------------------------------------------------------------------------
# User management
# -----------------------------------------------------------------------------


class TestUsersApi:
    """Tests for /api/users (admin only)."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_fixture", ["accounts_user", "clearance_user"])
    async def test_non_admin_forbidden(
        self, request, api_client, login_as, user_fixture, user_service
    ):
        login_as(request.getfixturevalue(user_fixture))

        response = await api_client.get("/api/users")

        assert response.status_code == 403
        assert response.json()["error"] == "Only admins can manage users"
        user_service.list_users.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_list_users(self, api_client, login_as, admin_user, user_service):
        login_as(admin_user)
        user_service.list_users.return_value = UserPage(
            items=[make_user(), make_user()], total=12, page=2, limit=5, total_pages=3
        )

        response = await api_client.get("/api/users", params={"page": 2, "limit": 5})

        assert response.status_code == 200
        data = response.json()
        assert len(data["users"]) == 2
        assert data["pagination"] == {"total": 12, "page": 2, "limit": 5, "totalPages": 3}

    @pytest.mark.asyncio
    async def test_create_user(self, api_client, login_as, admin_user, user_service):
        login_as(admin_user)
        user = make_user(UserRole.ACCOUNTS, username="newbie", must_change_password=True)
        user_service.create_user.return_value = CreatedUser(
            user=user, temporary_password="Tmp#Pass123"
        )

        response = await api_client.post(
            "/api/users",
            json={"username": "newbie", "email": "newbie@example.com", "role": "accounts"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["temporaryPassword"] == "Tmp#Pass123"
        assert data["user"]["mustChangePassword"] is True
        assert user_service.create_user.await_args.kwargs["email"] == "newbie@example.com"

    @pytest.mark.asyncio
    async def test_create_duplicate(self, api_client, login_as, admin_user, user_service):
        login_as(admin_user)
        user_service.create_user.side_effect = DuplicateError("Username already exists")

        response = await api_client.post(
            "/api/users",
            json={"username": "taken", "email": "x@example.com", "role": "accounts"},
        )

        assert response.status_code == 409
        assert response.json()["code"] == "duplicate"

    @pytest.mark.asyncio
    async def test_invalid_email_rejected(self, api_client, login_as, admin_user, user_service):
        login_as(admin_user)

        response = await api_client.post(
            "/api/users", json={"username": "x", "email": "not-an-email", "role": "accounts"}
        )

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"
        user_service.create_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reset_user_password(self, api_client, login_as, admin_user, user_service):
        login_as(admin_user)
        user_service.reset_user_password.return_value = "Tmp#Pass456"

        response = await api_client.post(f"/api/users/{uuid4()}/reset-password")

        assert response.status_code == 200
        assert response.json()["temporaryPassword"] == "Tmp#Pass456"


# -----------------------------------------------------------------------------
# Audit log
# -----------------------------------------------------------------------------


class TestAuditLogsApi:
    """Tests for GET /api/audit-logs."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_fixture", ["accounts_user", "clearance_user"])
    async def test_non_admin_forbidden(
        self, request, api_client, login_as, user_fixture, audit_service
    ):
        login_as(request.getfixturevalue(user_fixture))

        response = await api_client.get("/api/audit-logs")

        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "Only admins can view audit logs"
        assert body["code"] == "permission_denied"
        audit_service.query.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_query(self, api_client, login_as, admin_user, audit_service):
        login_as(admin_user)
        entry = AuditLogEntry(
            audit_log_id=uuid4(),
            action="APPROVE_SHIPMENT",
            entity_type="shipment",
            entity_id=str(uuid4()),
            user_id=admin_user.user_id,
            details={"shipment_code": "SHP-20261019-04217"},
            ip_address="127.0.0.1",
            user_agent="pytest",
            created_at=datetime.now(UTC),
            username=admin_user.username,
        )
        audit_service.query.return_value = [entry]

        response = await api_client.get(
            "/api/audit-logs",
            params={
                "action": "APPROVE_SHIPMENT",
                "entityType": "shipment",
                "startDate": "2026-10-01",
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["logs"][0]["username"] == admin_user.username
        kwargs = audit_service.query.await_args.kwargs
        assert kwargs["action"] == "APPROVE_SHIPMENT"
        assert kwargs["entity_type"] == "shipment"
        assert kwargs["start_date"].isoformat() == "2026-10-01"
        assert kwargs["limit"] == 50

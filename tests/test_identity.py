"""Tests for authentication and credential flows.

Tests cover:
- bcrypt hashing and password strength rules
- JWT issuance and verification
- Login, failed-login lockout, inactive accounts
- Refresh token rotation
- Password reset and change
"""

import threading
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import jwt
import pytest
from pydantic import SecretStr

from shipment_portal.core.config import AuthSettings
from shipment_portal.services import identity
from shipment_portal.db.models.base import UserRole
from shipment_portal.services.audit_log import AuditAction
from shipment_portal.services.errors import (
    AuthenticationError,
    LockedError,
    PermissionDeniedError,
    ValidationError,
)
from shipment_portal.services.identity import (
    FORGOT_PASSWORD_MESSAGE,
    IdentityService,
    TokenService,
    generate_temporary_password,
    hash_password,
    hash_token,
    validate_password_strength,
    verify_password,
)
from tests.factories import create_mock_session, make_actor, make_result, make_user

PASSWORD = "Correct#Horse9"


@pytest.fixture
def auth_settings() -> AuthSettings:
    return AuthSettings(
        jwt_secret=SecretStr("access-secret-for-tests"),
        jwt_refresh_secret=SecretStr("refresh-secret-for-tests"),
        bcrypt_rounds=4,
        max_login_attempts=3,
        lock_minutes=15,
    )


@pytest.fixture
def tokens(auth_settings) -> TokenService:
    return TokenService(auth_settings)


def _audit_mock() -> MagicMock:
    audit = MagicMock()
    audit.record = AsyncMock()
    audit.append = AsyncMock()
    return audit


def _identity(session, tokens, auth_settings, notifier=None):
    audit = _audit_mock()
    service = IdentityService(
        session, tokens=tokens, audit=audit, settings=auth_settings, notifier=notifier
    )
    return service, audit


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


class TestPasswords:
    """Tests for password helpers."""

    def test_hash_and_verify(self):
        password_hash = hash_password(PASSWORD, rounds=4)
        assert password_hash.startswith("$2")
        assert verify_password(PASSWORD, password_hash)
        assert not verify_password("wrong", password_hash)

    def test_malformed_hash_never_matches(self):
        assert not verify_password(PASSWORD, "not-a-bcrypt-hash")

    def test_strong_password(self):
        assert validate_password_strength(PASSWORD) == []

    def test_weak_password_lists_every_rule(self):
        assert validate_password_strength("abc") == [
            "Password must be at least 8 characters long",
            "Password must contain at least one uppercase letter",
            "Password must contain at least one number",
            "Password must contain at least one special character",
        ]

    def test_temporary_password_is_strong(self):
        for _ in range(20):
            password = generate_temporary_password()
            assert len(password) == 12
            assert validate_password_strength(password) == []

    def test_hash_token_is_stable(self):
        assert hash_token("abc") == hash_token("abc")
        assert len(hash_token("abc")) == 64


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class TestTokenService:
    """Tests for JWT issuance and verification."""

    def test_access_token_round_trip(self, tokens):
        user = make_user(UserRole.ACCOUNTS)

        claims = tokens.verify(tokens.create_access_token(user))

        assert claims.user_id == user.user_id
        assert claims.role == UserRole.ACCOUNTS
        assert claims.username == user.username
        assert claims.token_type == "access"

    def test_refresh_token_is_not_an_access_token(self, tokens):
        pair = tokens.create_token_pair(make_user())

        with pytest.raises(AuthenticationError):
            tokens.verify(pair.refresh_token)
        assert tokens.verify(pair.refresh_token, token_type="refresh").token_type == "refresh"

    def test_remember_me_extends_refresh_lifetime(self, tokens, auth_settings):
        user = make_user()
        short = tokens.create_token_pair(user)
        long = tokens.create_token_pair(user, remember_me=True)

        delta = long.refresh_expires_at - short.refresh_expires_at
        expected = timedelta(days=auth_settings.remember_me_days - auth_settings.refresh_token_days)
        assert abs(delta - expected) < timedelta(minutes=1)

    def test_expired_token(self, tokens, auth_settings):
        now = datetime.now(UTC)
        token = jwt.encode(
            {
                "iss": auth_settings.jwt_issuer,
                "sub": str(uuid4()),
                "role": "admin",
                "type": "access",
                "iat": now - timedelta(hours=2),
                "exp": now - timedelta(hours=1),
            },
            auth_settings.jwt_secret.get_secret_value(),
            algorithm="HS256",
        )

        with pytest.raises(AuthenticationError) as exc_info:
            tokens.verify(token)
        assert exc_info.value.message == "Token has expired"

    def test_foreign_signature(self, auth_settings):
        other = TokenService(
            AuthSettings(
                jwt_secret=SecretStr("someone-elses-secret"),
                jwt_issuer=auth_settings.jwt_issuer,
            )
        )
        token = other.create_access_token(make_user())

        with pytest.raises(AuthenticationError) as exc_info:
            TokenService(auth_settings).verify(token)
        assert exc_info.value.message == "Invalid or expired token"

    def test_unknown_role_rejected(self, tokens, auth_settings):
        now = datetime.now(UTC)
        token = jwt.encode(
            {
                "iss": auth_settings.jwt_issuer,
                "sub": str(uuid4()),
                "role": "superuser",
                "type": "access",
                "iat": now,
                "exp": now + timedelta(minutes=5),
            },
            auth_settings.jwt_secret.get_secret_value(),
            algorithm="HS256",
        )

        with pytest.raises(AuthenticationError):
            tokens.verify(token)


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class TestLogin:
    """Tests for login and lockout."""

    @pytest.mark.asyncio
    async def test_successful_login(self, tokens, auth_settings):
        user = make_user(password_hash=hash_password(PASSWORD, 4), failed_login_attempts=2)
        session = create_mock_session(make_result(one=user))
        service, audit = _identity(session, tokens, auth_settings)

        result = await service.login(user.username, PASSWORD, ip_address="10.0.0.1")

        assert result.user is user
        assert tokens.verify(result.tokens.access_token).user_id == user.user_id
        assert user.failed_login_attempts == 0
        assert user.last_login_at is not None

        stored = session.add.call_args.args[0]
        assert stored.token_hash == hash_token(result.tokens.refresh_token)
        assert audit.append.await_args.kwargs["action"] == AuditAction.LOGIN_SUCCESS
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("username", "password"), [("", PASSWORD), ("bob", None)])
    async def test_credentials_required(self, tokens, auth_settings, username, password):
        service, _ = _identity(create_mock_session(), tokens, auth_settings)

        with pytest.raises(ValidationError) as exc_info:
            await service.login(username, password)
        assert exc_info.value.message == "Username and password are required"

    @pytest.mark.asyncio
    async def test_unknown_user(self, tokens, auth_settings):
        service, _ = _identity(create_mock_session(make_result()), tokens, auth_settings)

        with pytest.raises(AuthenticationError) as exc_info:
            await service.login("ghost", PASSWORD)
        assert exc_info.value.message == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_unknown_user_still_checks_a_password(self, tokens, auth_settings, monkeypatch):
        checked = []
        real_verify = identity.verify_password

        def spy(password, password_hash):
            checked.append(password)
            return real_verify(password, password_hash)

        monkeypatch.setattr(identity, "verify_password", spy)
        service, _ = _identity(create_mock_session(make_result()), tokens, auth_settings)

        with pytest.raises(AuthenticationError):
            await service.login("ghost", PASSWORD)
        assert checked == [PASSWORD]

    @pytest.mark.asyncio
    async def test_password_check_runs_off_event_loop(self, tokens, auth_settings, monkeypatch):
        threads = []
        real_verify = identity.verify_password

        def spy(password, password_hash):
            threads.append(threading.get_ident())
            return real_verify(password, password_hash)

        monkeypatch.setattr(identity, "verify_password", spy)
        user = make_user(password_hash=hash_password(PASSWORD, 4))
        service, _ = _identity(create_mock_session(make_result(one=user)), tokens, auth_settings)

        await service.login(user.username, PASSWORD)

        assert len(threads) == 1
        assert threads[0] != threading.get_ident()

    @pytest.mark.asyncio
    async def test_inactive_user(self, tokens, auth_settings):
        user = make_user(password_hash=hash_password(PASSWORD, 4), is_active=False)
        service, _ = _identity(create_mock_session(make_result(one=user)), tokens, auth_settings)

        with pytest.raises(PermissionDeniedError) as exc_info:
            await service.login(user.username, PASSWORD)
        assert exc_info.value.message == "Account is inactive"

    @pytest.mark.asyncio
    async def test_wrong_password_counts_failure(self, tokens, auth_settings):
        user = make_user(password_hash=hash_password(PASSWORD, 4))
        session = create_mock_session(make_result(one=user))
        service, audit = _identity(session, tokens, auth_settings)

        with pytest.raises(AuthenticationError):
            await service.login(user.username, "Wrong#Pass1")

        assert user.failed_login_attempts == 1
        assert user.locked_until is None
        assert audit.append.await_args.kwargs["action"] == AuditAction.LOGIN_FAILED
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lockout_after_max_attempts(self, tokens, auth_settings):
        user = make_user(password_hash=hash_password(PASSWORD, 4), failed_login_attempts=2)
        session = create_mock_session(make_result(one=user))
        service, audit = _identity(session, tokens, auth_settings)

        with pytest.raises(AuthenticationError):
            await service.login(user.username, "Wrong#Pass1")

        assert user.locked_until is not None
        assert user.locked_until > datetime.now(UTC) + timedelta(minutes=14)
        assert user.failed_login_attempts == 0
        actions = [c.kwargs["action"] for c in audit.append.await_args_list]
        assert actions == [AuditAction.LOGIN_FAILED, AuditAction.ACCOUNT_LOCKED]

    @pytest.mark.asyncio
    async def test_locked_account_rejected_even_with_right_password(self, tokens, auth_settings):
        user = make_user(
            password_hash=hash_password(PASSWORD, 4),
            locked_until=datetime.now(UTC) + timedelta(minutes=5),
        )
        session = create_mock_session(make_result(one=user))
        service, _ = _identity(session, tokens, auth_settings)

        with pytest.raises(LockedError) as exc_info:
            await service.login(user.username, PASSWORD)

        assert exc_info.value.status_code == 423
        assert "lockedUntil" in exc_info.value.to_dict()
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_lock_allows_login(self, tokens, auth_settings):
        user = make_user(
            password_hash=hash_password(PASSWORD, 4),
            locked_until=datetime.now(UTC) - timedelta(minutes=1),
        )
        service, _ = _identity(create_mock_session(make_result(one=user)), tokens, auth_settings)

        await service.login(user.username, PASSWORD)

        assert user.locked_until is None


# ---------------------------------------------------------------------------
# Refresh / logout
# ---------------------------------------------------------------------------


class TestRefresh:
    """Tests for refresh token rotation."""

    @pytest.mark.asyncio
    async def test_refresh_rotates_token(self, tokens, auth_settings):
        user = make_user()
        pair = tokens.create_token_pair(user)
        stored = SimpleNamespace(expires_at=datetime.now(UTC) + timedelta(days=1))
        session = create_mock_session(make_result(one=stored))
        session.get = AsyncMock(return_value=user)
        service, _ = _identity(session, tokens, auth_settings)

        new_pair = await service.refresh(pair.refresh_token)

        session.delete.assert_awaited_once_with(stored)
        added = session.add.call_args.args[0]
        assert added.token_hash == hash_token(new_pair.refresh_token)
        assert new_pair.refresh_token != pair.refresh_token

    @pytest.mark.asyncio
    async def test_revoked_token_rejected(self, tokens, auth_settings):
        pair = tokens.create_token_pair(make_user())
        service, _ = _identity(create_mock_session(make_result()), tokens, auth_settings)

        with pytest.raises(AuthenticationError) as exc_info:
            await service.refresh(pair.refresh_token)
        assert exc_info.value.message == "Invalid refresh token"

    @pytest.mark.asyncio
    async def test_inactive_user_cannot_refresh(self, tokens, auth_settings):
        user = make_user(is_active=False)
        pair = tokens.create_token_pair(user)
        stored = SimpleNamespace(expires_at=datetime.now(UTC) + timedelta(days=1))
        session = create_mock_session(make_result(one=stored))
        session.get = AsyncMock(return_value=user)
        service, _ = _identity(session, tokens, auth_settings)

        with pytest.raises(AuthenticationError) as exc_info:
            await service.refresh(pair.refresh_token)
        assert exc_info.value.message == "User not found or inactive"

    @pytest.mark.asyncio
    async def test_access_token_cannot_refresh(self, tokens, auth_settings):
        service, _ = _identity(create_mock_session(), tokens, auth_settings)

        with pytest.raises(AuthenticationError):
            await service.refresh(tokens.create_access_token(make_user()))

    @pytest.mark.asyncio
    async def test_logout_revokes_and_audits(self, tokens, auth_settings):
        session = create_mock_session()
        service, audit = _identity(session, tokens, auth_settings)
        actor = make_actor()

        await service.logout(actor, "some-refresh-token")

        session.execute.assert_awaited_once()
        assert audit.record.await_args.args[1] == AuditAction.LOGOUT
        session.commit.assert_awaited_once()


# ---------------------------------------------------------------------------
# Password flows
# ---------------------------------------------------------------------------


class TestPasswordFlows:
    """Tests for forgot, reset, and change password."""

    @pytest.mark.asyncio
    async def test_forgot_password_unknown_email_gives_same_answer(self, tokens, auth_settings):
        notifier = MagicMock()
        notifier.send_password_reset = AsyncMock()
        service, _ = _identity(create_mock_session(make_result()), tokens, auth_settings, notifier)

        message = await service.forgot_password("nobody@example.com")

        assert message == FORGOT_PASSWORD_MESSAGE
        notifier.send_password_reset.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_forgot_password_sends_link(self, tokens, auth_settings):
        user = make_user(email="jo@example.com")
        session = create_mock_session(make_result(one=user))
        notifier = MagicMock()
        notifier.send_password_reset = AsyncMock()
        service, _ = _identity(session, tokens, auth_settings, notifier)

        message = await service.forgot_password("jo@example.com")

        assert message == FORGOT_PASSWORD_MESSAGE
        reset = session.add.call_args.args[0]
        notifier.send_password_reset.assert_awaited_once_with(
            "jo@example.com", reset.token, user.full_name
        )
        assert reset.expires_at > datetime.now(UTC)

    @pytest.mark.asyncio
    async def test_reset_password(self, tokens, auth_settings):
        user = make_user(locked_until=datetime.now(UTC) + timedelta(minutes=5))
        reset = SimpleNamespace(
            user_id=user.user_id,
            used=False,
            expires_at=datetime.now(UTC) + timedelta(minutes=30),
        )
        session = create_mock_session(make_result(one=reset))
        session.get = AsyncMock(return_value=user)
        service, _ = _identity(session, tokens, auth_settings)

        await service.reset_password("reset-token", "New#Passw0rd")

        assert verify_password("New#Passw0rd", user.password_hash)
        assert reset.used is True
        assert user.locked_until is None
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_new_password_hashed_off_event_loop(self, tokens, auth_settings, monkeypatch):
        threads = []
        real_hash = identity.hash_password

        def spy(password, rounds=12):
            threads.append(threading.get_ident())
            return real_hash(password, rounds)

        monkeypatch.setattr(identity, "hash_password", spy)
        user = make_user(must_change_password=True)
        session = create_mock_session()
        session.get = AsyncMock(return_value=user)
        service, _ = _identity(session, tokens, auth_settings)

        await service.change_password(make_actor(user_id=user.user_id), None, "New#Passw0rd")

        assert len(threads) == 1
        assert threads[0] != threading.get_ident()

    @pytest.mark.asyncio
    async def test_reset_password_used_token(self, tokens, auth_settings):
        reset = SimpleNamespace(
            user_id=uuid4(), used=True, expires_at=datetime.now(UTC) + timedelta(minutes=30)
        )
        service, _ = _identity(create_mock_session(make_result(one=reset)), tokens, auth_settings)

        with pytest.raises(ValidationError) as exc_info:
            await service.reset_password("reset-token", "New#Passw0rd")
        assert exc_info.value.message == "Invalid or expired reset token"

    @pytest.mark.asyncio
    async def test_reset_password_weak(self, tokens, auth_settings):
        service, _ = _identity(create_mock_session(), tokens, auth_settings)

        with pytest.raises(ValidationError) as exc_info:
            await service.reset_password("reset-token", "weak")
        assert exc_info.value.message == "Weak password"
        assert exc_info.value.details

    @pytest.mark.asyncio
    async def test_change_password_requires_current(self, tokens, auth_settings):
        user = make_user(password_hash=hash_password(PASSWORD, 4))
        session = create_mock_session()
        session.get = AsyncMock(return_value=user)
        service, _ = _identity(session, tokens, auth_settings)
        actor = make_actor(user_id=user.user_id)

        with pytest.raises(ValidationError):
            await service.change_password(actor, None, "New#Passw0rd")
        with pytest.raises(AuthenticationError) as exc_info:
            await service.change_password(actor, "Wrong#Pass1", "New#Passw0rd")
        assert exc_info.value.message == "Current password is incorrect"

    @pytest.mark.asyncio
    async def test_first_login_change_skips_current_password(self, tokens, auth_settings):
        user = make_user(must_change_password=True)
        session = create_mock_session()
        session.get = AsyncMock(return_value=user)
        service, audit = _identity(session, tokens, auth_settings)

        await service.change_password(make_actor(user_id=user.user_id), None, "New#Passw0rd")

        assert user.must_change_password is False
        assert verify_password("New#Passw0rd", user.password_hash)
        assert audit.record.await_args.args[1] == AuditAction.PASSWORD_CHANGED

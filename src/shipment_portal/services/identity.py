"""Authentication: password hashing, JWT issuance, login lockout, password resets.

Access and refresh tokens are signed with separate secrets. Refresh tokens are
stored only as SHA-256 hashes and are rotated on every refresh. Repeated failed
logins lock the account for a configurable window.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import secrets
import string
import uuid
from dataclasses import dataclass
from functools import lru_cache
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import bcrypt
import jwt
from sqlalchemy import delete, select

from shipment_portal.db.models.base import UserRole
from shipment_portal.db.models.users import PasswordResetToken, RefreshToken, User
from shipment_portal.services.audit_log import AuditAction, EntityType
from shipment_portal.services.errors import (
    AuthenticationError,
    LockedError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from shipment_portal.core.config import AuthSettings
    from shipment_portal.services.audit_log import AuditLogService
    from shipment_portal.services.authz import Actor
    from shipment_portal.services.email import ShipmentNotifier

logger = logging.getLogger(__name__)

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"

FORGOT_PASSWORD_MESSAGE = "If the email exists, a password reset link has been sent"
SPECIAL_CHARACTERS = "!@#$%^&*(),.?\":{}|<>"


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


def hash_password(password: str, rounds: int = 12) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a bcrypt hash. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


async def hash_password_async(password: str, rounds: int = 12) -> str:
    """Run hash_password() on a worker thread."""
    return await asyncio.to_thread(hash_password, password, rounds)


async def verify_password_async(password: str, password_hash: str) -> bool:
    return await asyncio.to_thread(verify_password, password, password_hash)


@lru_cache(maxsize=4)
def _unknown_user_hash(rounds: int) -> str:
    # Compared against when the username does not exist so both paths cost one bcrypt check
    return hash_password(secrets.token_urlsafe(24), rounds)


def validate_password_strength(password: str) -> list[str]:
    """Return the list of strength rules the password fails, empty if strong."""
    errors = []
    if len(password) < 8:
        errors.append("Password must be at least 8 characters long")
    if not any(c.isupper() for c in password):
        errors.append("Password must contain at least one uppercase letter")
    if not any(c.islower() for c in password):
        errors.append("Password must contain at least one lowercase letter")
    if not any(c.isdigit() for c in password):
        errors.append("Password must contain at least one number")
    if not any(c in SPECIAL_CHARACTERS for c in password):
        errors.append("Password must contain at least one special character")
    return errors


def generate_temporary_password(length: int = 12) -> str:
    """Generate a random password that passes validate_password_strength."""
    pools = [string.ascii_uppercase, string.ascii_lowercase, string.digits, "!@#$%^&*"]
    chars = [secrets.choice(pool) for pool in pools]
    alphabet = "".join(pools)
    chars += [secrets.choice(alphabet) for _ in range(max(length, 8) - len(chars))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TokenClaims:
    """Verified contents of an access or refresh token."""

    user_id: uuid.UUID
    username: str
    email: str
    role: UserRole
    token_type: str
    expires_at: datetime
    jti: str


@dataclass(frozen=True, slots=True)
class TokenPair:
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime


class TokenService:
    """Issue and verify signed JWTs for one set of auth settings."""

    def __init__(self, settings: AuthSettings) -> None:
        self._settings = settings

    def _secret(self, token_type: str) -> str:
        if token_type == REFRESH_TOKEN:
            return self._settings.jwt_refresh_secret.get_secret_value()
        return self._settings.jwt_secret.get_secret_value()

    def _encode(self, user: User, token_type: str, lifetime: timedelta) -> tuple[str, datetime]:
        now = datetime.now(UTC)
        expires_at = now + lifetime
        payload = {
            "iss": self._settings.jwt_issuer,
            "sub": str(user.user_id),
            "username": user.username,
            "email": user.email,
            "role": user.role.value,
            "type": token_type,
            "iat": now,
            "exp": expires_at,
            "jti": secrets.token_hex(16),
        }
        token = jwt.encode(
            payload, self._secret(token_type), algorithm=self._settings.jwt_algorithm
        )
        return token, expires_at

    def create_access_token(self, user: User) -> str:
        token, _ = self._encode(
            user, ACCESS_TOKEN, timedelta(minutes=self._settings.access_token_minutes)
        )
        return token

    def create_token_pair(self, user: User, *, remember_me: bool = False) -> TokenPair:
        days = self._settings.remember_me_days if remember_me else self._settings.refresh_token_days
        refresh_token, refresh_expires_at = self._encode(
            user, REFRESH_TOKEN, timedelta(days=days)
        )
        return TokenPair(
            access_token=self.create_access_token(user),
            refresh_token=refresh_token,
            refresh_expires_at=refresh_expires_at,
        )

    def verify(self, token: str, *, token_type: str = ACCESS_TOKEN) -> TokenClaims:
        """Verify signature, expiry, issuer, and token type.

        Raises:
            AuthenticationError: If the token is expired or invalid.
        """
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                self._secret(token_type),
                algorithms=[self._settings.jwt_algorithm],
                issuer=self._settings.jwt_issuer,
                options={"require": ["exp", "iat", "sub", "type"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError("Token has expired") from e
        except jwt.InvalidTokenError as e:
            logger.debug("Token rejected: %s", e)
            raise AuthenticationError("Invalid or expired token") from e

        if payload.get("type") != token_type:
            raise AuthenticationError("Invalid or expired token")

        try:
            return TokenClaims(
                user_id=uuid.UUID(payload["sub"]),
                username=payload.get("username", ""),
                email=payload.get("email", ""),
                role=UserRole(payload.get("role")),
                token_type=token_type,
                expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
                jti=payload.get("jti", ""),
            )
        except ValueError as e:
            raise AuthenticationError("Invalid or expired token") from e


# ---------------------------------------------------------------------------
# Identity service
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LoginResult:
    user: User
    tokens: TokenPair


class IdentityService:
    """Login, token refresh, logout, and password flows."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        tokens: TokenService,
        audit: AuditLogService,
        settings: AuthSettings,
        notifier: ShipmentNotifier | None = None,
    ) -> None:
        self._session = session
        self._tokens = tokens
        self._audit = audit
        self._settings = settings
        self._notifier = notifier

    async def get_user(self, user_id: uuid.UUID) -> User:
        user = await self._session.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def login(
        self,
        username: str | None,
        password: str | None,
        *,
        remember_me: bool = False,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> LoginResult:
        """Authenticate with username and password.

        Raises:
            ValidationError: Username or password missing.
            AuthenticationError: Unknown user or wrong password.
            PermissionDeniedError: Account is inactive.
            LockedError: Too many recent failures.
        """
        if not username or not password:
            raise ValidationError("Username and password are required")

        result = await self._session.execute(select(User).where(User.username == username))
        user = result.scalar_one_or_none()
        if user is None:
            dummy = await asyncio.to_thread(_unknown_user_hash, self._settings.bcrypt_rounds)
            await verify_password_async(password, dummy)
            logger.info("Login failed for unknown user", extra={"username": username})
            raise AuthenticationError("Invalid credentials")

        if not user.is_active:
            raise PermissionDeniedError("Account is inactive")

        now = datetime.now(UTC)
        if user.locked_until is not None and user.locked_until > now:
            raise LockedError(
                "Account is temporarily locked due to too many failed login attempts",
                locked_until=user.locked_until,
            )

        if not await verify_password_async(password, user.password_hash):
            await self._record_failed_login(user, now, ip_address, user_agent)
            raise AuthenticationError("Invalid credentials")

        tokens = self._tokens.create_token_pair(user, remember_me=remember_me)
        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login_at = now
        self._session.add(
            RefreshToken(
                token_id=uuid.uuid4(),
                user_id=user.user_id,
                token_hash=hash_token(tokens.refresh_token),
                expires_at=tokens.refresh_expires_at,
                created_at=now,
            )
        )
        await self._session.flush()

        await self._audit.append(
            action=AuditAction.LOGIN_SUCCESS,
            entity_type=EntityType.USER,
            entity_id=user.user_id,
            user_id=user.user_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self._session.commit()

        logger.info("User logged in", extra={"user_id": str(user.user_id)})
        return LoginResult(user=user, tokens=tokens)

    async def _record_failed_login(
        self,
        user: User,
        now: datetime,
        ip_address: str | None,
        user_agent: str | None,
    ) -> None:
        user.failed_login_attempts += 1
        locked = user.failed_login_attempts >= self._settings.max_login_attempts
        if locked:
            user.locked_until = now + timedelta(minutes=self._settings.lock_minutes)
            user.failed_login_attempts = 0
        await self._session.flush()

        await self._audit.append(
            action=AuditAction.LOGIN_FAILED,
            entity_type=EntityType.USER,
            entity_id=user.user_id,
            user_id=user.user_id,
            details={"reason": "Invalid password"},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        if locked:
            logger.warning(
                "Account locked after repeated failed logins",
                extra={"user_id": str(user.user_id), "locked_until": user.locked_until.isoformat()},
            )
            await self._audit.append(
                action=AuditAction.ACCOUNT_LOCKED,
                entity_type=EntityType.USER,
                entity_id=user.user_id,
                user_id=user.user_id,
                details={"locked_until": user.locked_until.isoformat()},
                ip_address=ip_address,
                user_agent=user_agent,
            )
        await self._session.commit()

    async def refresh(self, refresh_token: str | None) -> TokenPair:
        """Exchange a refresh token for a new pair. The old token is revoked."""
        if not refresh_token:
            raise ValidationError("Refresh token is required")

        claims = self._tokens.verify(refresh_token, token_type=REFRESH_TOKEN)

        result = await self._session.execute(
            select(RefreshToken).where(RefreshToken.token_hash == hash_token(refresh_token))
        )
        stored = result.scalar_one_or_none()
        now = datetime.now(UTC)
        if stored is None or stored.expires_at <= now:
            raise AuthenticationError("Invalid refresh token")

        user = await self._session.get(User, claims.user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("User not found or inactive")

        await self._session.delete(stored)
        tokens = self._tokens.create_token_pair(user)
        self._session.add(
            RefreshToken(
                token_id=uuid.uuid4(),
                user_id=user.user_id,
                token_hash=hash_token(tokens.refresh_token),
                expires_at=tokens.refresh_expires_at,
                created_at=now,
            )
        )
        await self._session.commit()
        return tokens

    async def logout(self, actor: Actor | None, refresh_token: str | None = None) -> None:
        if refresh_token:
            await self._session.execute(
                delete(RefreshToken).where(RefreshToken.token_hash == hash_token(refresh_token))
            )
        if actor is not None:
            await self._audit.record(actor, AuditAction.LOGOUT, EntityType.USER, actor.user_id)
        await self._session.commit()

    async def forgot_password(
        self, email: str | None, *, ip_address: str | None = None, user_agent: str | None = None
    ) -> str:
        """Start a password reset. The reply never reveals whether the email exists."""
        if not email:
            raise ValidationError("Email is required")

        result = await self._session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if user is None or not user.is_active:
            return FORGOT_PASSWORD_MESSAGE

        await self._session.execute(
            delete(PasswordResetToken).where(PasswordResetToken.user_id == user.user_id)
        )
        now = datetime.now(UTC)
        token = secrets.token_urlsafe(32)
        self._session.add(
            PasswordResetToken(
                token_id=uuid.uuid4(),
                user_id=user.user_id,
                token=token,
                expires_at=now + timedelta(minutes=self._settings.reset_token_minutes),
                used=False,
                created_at=now,
            )
        )
        await self._session.flush()

        await self._audit.append(
            action=AuditAction.PASSWORD_RESET_REQUESTED,
            entity_type=EntityType.USER,
            entity_id=user.user_id,
            user_id=user.user_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self._session.commit()

        if self._notifier is not None:
            await self._notifier.send_password_reset(user.email, token, user.full_name)

        return FORGOT_PASSWORD_MESSAGE

    async def reset_password(
        self,
        token: str | None,
        new_password: str | None,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """Complete a password reset with a single-use token."""
        if not token or not new_password:
            raise ValidationError("Token and new password are required")

        weaknesses = validate_password_strength(new_password)
        if weaknesses:
            raise ValidationError("Weak password", details=weaknesses)

        result = await self._session.execute(
            select(PasswordResetToken).where(PasswordResetToken.token == token)
        )
        reset = result.scalar_one_or_none()
        if reset is None or reset.used or reset.expires_at <= datetime.now(UTC):
            raise ValidationError("Invalid or expired reset token")

        user = await self.get_user(reset.user_id)
        user.password_hash = await hash_password_async(new_password, self._settings.bcrypt_rounds)
        user.must_change_password = False
        user.failed_login_attempts = 0
        user.locked_until = None
        reset.used = True

        await self._revoke_refresh_tokens(user.user_id)
        await self._session.flush()

        await self._audit.append(
            action=AuditAction.PASSWORD_RESET_COMPLETED,
            entity_type=EntityType.USER,
            entity_id=user.user_id,
            user_id=user.user_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self._session.commit()
        logger.info("Password reset completed", extra={"user_id": str(user.user_id)})

    async def change_password(
        self, actor: Actor, current_password: str | None, new_password: str | None
    ) -> None:
        """Change the actor's own password.

        The current password may be omitted while ``must_change_password`` is set.
        """
        if not new_password:
            raise ValidationError("New password is required")

        weaknesses = validate_password_strength(new_password)
        if weaknesses:
            raise ValidationError("Weak password", details=weaknesses)

        user = await self.get_user(actor.user_id)
        if not user.must_change_password:
            if not current_password:
                raise ValidationError("Current password is required")
            if not await verify_password_async(current_password, user.password_hash):
                raise AuthenticationError("Current password is incorrect")

        user.password_hash = await hash_password_async(new_password, self._settings.bcrypt_rounds)
        user.must_change_password = False
        await self._session.flush()

        await self._audit.record(actor, AuditAction.PASSWORD_CHANGED, EntityType.USER, user.user_id)
        await self._session.commit()

    async def _revoke_refresh_tokens(self, user_id: uuid.UUID) -> None:
        await self._session.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))

"""Administrative user management.

Every operation requires the MANAGE_USERS capability, which only admins hold.
Accounts created here get a temporary password that must be changed at first
login; it is mailed to the user and also returned once to the admin.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, or_, select

from shipment_portal.db import LIKE_ESCAPE, escape_like
from shipment_portal.db.models.base import UserRole
from shipment_portal.db.models.users import RefreshToken, User
from shipment_portal.services.audit_log import AuditAction, EntityType
from shipment_portal.services.authz import Action, require_allowed
from shipment_portal.services.errors import DuplicateError, NotFoundError, ValidationError
from shipment_portal.services.identity import (
    generate_temporary_password,
    hash_password_async,
    validate_password_strength,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from shipment_portal.services.audit_log import AuditLogService
    from shipment_portal.services.authz import Actor
    from shipment_portal.services.email import ShipmentNotifier

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


@dataclass(frozen=True, slots=True)
class UserPage:
    items: list[User]
    total: int
    page: int
    limit: int
    total_pages: int


@dataclass(frozen=True, slots=True)
class CreatedUser:
    """A new account plus the password issued for it."""

    user: User
    temporary_password: str


class UserManagementService:
    """Admin-only CRUD over user accounts."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        audit: AuditLogService,
        notifier: ShipmentNotifier | None = None,
        bcrypt_rounds: int = 12,
    ) -> None:
        self._session = session
        self._audit = audit
        self._notifier = notifier
        self._bcrypt_rounds = bcrypt_rounds

    async def list_users(
        self,
        actor: Actor,
        *,
        role: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> UserPage:
        require_allowed(actor, Action.MANAGE_USERS)

        conditions: list[Any] = []
        if role:
            conditions.append(User.role == _parse_role(role))
        if search:
            pattern = f"%{escape_like(search.strip())}%"
            conditions.append(
                or_(
                    User.username.ilike(pattern, escape=LIKE_ESCAPE),
                    User.email.ilike(pattern, escape=LIKE_ESCAPE),
                    User.full_name.ilike(pattern, escape=LIKE_ESCAPE),
                )
            )

        page = max(page, 1)
        limit = max(1, min(limit, MAX_PAGE_SIZE))

        total = int(
            await self._session.scalar(select(func.count()).select_from(User).where(*conditions))
            or 0
        )
        result = await self._session.execute(
            select(User)
            .where(*conditions)
            .order_by(User.created_at.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        return UserPage(
            items=list(result.scalars().all()),
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        )

    async def create_user(
        self,
        actor: Actor,
        *,
        username: str | None,
        email: str | None,
        role: str | None,
        full_name: str | None = None,
        password: str | None = None,
    ) -> CreatedUser:
        """Create an account.

        Raises:
            ValidationError: Missing fields, unknown role, or weak password.
            DuplicateError: Username or email already taken.
        """
        require_allowed(actor, Action.MANAGE_USERS)

        if not username or not email or not role:
            raise ValidationError("Username, email, and role are required")
        parsed_role = _parse_role(role)

        if password:
            weaknesses = validate_password_strength(password)
            if weaknesses:
                raise ValidationError("Weak password", details=weaknesses)

        if await self._exists(User.username == username):
            raise DuplicateError("Username already exists")
        if await self._exists(User.email == email):
            raise DuplicateError("Email already exists")

        temporary_password = password or generate_temporary_password()
        password_hash = await hash_password_async(temporary_password, self._bcrypt_rounds)
        now = datetime.now(UTC)
        user = User(
            user_id=uuid.uuid4(),
            username=username,
            email=email,
            password_hash=password_hash,
            role=parsed_role,
            full_name=full_name,
            is_active=True,
            must_change_password=True,
            failed_login_attempts=0,
            created_by=actor.user_id,
            created_at=now,
            updated_at=now,
        )
        self._session.add(user)
        await self._session.flush()

        await self._audit.record(
            actor,
            AuditAction.USER_CREATED,
            EntityType.USER,
            user.user_id,
            details={"username": username, "email": email, "role": parsed_role.value},
        )
        await self._session.commit()

        logger.info(
            "User created",
            extra={"user_id": str(user.user_id), "role": parsed_role.value},
        )

        if self._notifier is not None:
            await self._notifier.send_welcome(email, username, temporary_password, full_name)

        return CreatedUser(user=user, temporary_password=temporary_password)

    async def update_user(
        self,
        actor: Actor,
        user_id: uuid.UUID,
        *,
        email: str | None = None,
        role: str | None = None,
        full_name: str | None = None,
        is_active: bool | None = None,
    ) -> User:
        require_allowed(actor, Action.MANAGE_USERS)
        user = await self._get(user_id)

        changes: dict[str, Any] = {}
        if role is not None:
            changes["role"] = _parse_role(role)
        if email is not None and email != user.email:
            if await self._exists(User.email == email, User.user_id != user_id):
                raise DuplicateError("Email already exists")
            changes["email"] = email
        if full_name is not None:
            changes["full_name"] = full_name
        if is_active is not None:
            changes["is_active"] = is_active

        for name, value in changes.items():
            setattr(user, name, value)
        user.updated_at = datetime.now(UTC)
        await self._session.flush()

        await self._audit.record(
            actor,
            AuditAction.USER_UPDATED,
            EntityType.USER,
            user_id,
            details={
                name: value.value if isinstance(value, UserRole) else value
                for name, value in changes.items()
            },
        )
        await self._session.commit()
        return user

    async def delete_user(self, actor: Actor, user_id: uuid.UUID) -> None:
        """Delete an account. Foreign keys null out references to it."""
        require_allowed(actor, Action.MANAGE_USERS)
        if actor.owns(user_id):
            raise ValidationError("Cannot delete your own account")

        user = await self._get(user_id)
        username = user.username
        await self._session.delete(user)
        await self._session.flush()

        await self._audit.record(
            actor,
            AuditAction.USER_DELETED,
            EntityType.USER,
            user_id,
            details={"username": username},
        )
        await self._session.commit()
        logger.info("User deleted", extra={"user_id": str(user_id)})

    async def reset_user_password(self, actor: Actor, user_id: uuid.UUID) -> str:
        """Issue a new temporary password and sign the user out everywhere."""
        require_allowed(actor, Action.MANAGE_USERS)
        user = await self._get(user_id)

        temporary_password = generate_temporary_password()
        user.password_hash = await hash_password_async(temporary_password, self._bcrypt_rounds)
        user.must_change_password = True
        user.failed_login_attempts = 0
        user.locked_until = None
        user.updated_at = datetime.now(UTC)

        await self._session.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
        await self._session.flush()

        await self._audit.record(
            actor,
            AuditAction.USER_PASSWORD_RESET,
            EntityType.USER,
            user_id,
            details={"username": user.username},
        )
        await self._session.commit()

        if self._notifier is not None:
            await self._notifier.send_temporary_password(
                user.email, user.username, temporary_password, user.full_name
            )
        return temporary_password

    async def _get(self, user_id: uuid.UUID) -> User:
        user = await self._session.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def _exists(self, *conditions: Any) -> bool:
        result = await self._session.execute(select(User.user_id).where(*conditions).limit(1))
        return result.scalar_one_or_none() is not None


def _parse_role(role: str) -> UserRole:
    try:
        return UserRole(role)
    except ValueError as e:
        raise ValidationError("Invalid role") from e

"""Best-effort audit logging.

Every successful lifecycle transition, document operation, and account event
appends one audit record. Writes happen inside a SAVEPOINT so a failed insert
never poisons the surrounding transaction, and failures are logged rather
than raised: the business operation the record describes always wins.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from shipment_portal.services.authz import Actor

logger = logging.getLogger(__name__)

DEFAULT_QUERY_LIMIT = 50
MAX_QUERY_LIMIT = 500


class AuditAction(Enum):
    """Audit event types for categorization and filtering."""

    # Shipment lifecycle
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    REQUEST_CHANGES = "REQUEST_CHANGES"

    # Documents
    UPLOAD_DOCUMENT = "UPLOAD_DOCUMENT"
    DELETE_DOCUMENT = "DELETE_DOCUMENT"
    DOWNLOAD_DOCUMENT = "DOWNLOAD_DOCUMENT"

    # Authentication
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    LOGOUT = "LOGOUT"
    PASSWORD_RESET_REQUESTED = "PASSWORD_RESET_REQUESTED"
    PASSWORD_RESET_COMPLETED = "PASSWORD_RESET_COMPLETED"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"

    # User management
    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_DELETED = "USER_DELETED"
    USER_PASSWORD_RESET = "USER_PASSWORD_RESET"


class EntityType(str, Enum):
    """Kinds of entity an audit record can refer to."""

    SHIPMENT = "shipment"
    DOCUMENT = "document"
    USER = "user"


@dataclass(frozen=True, slots=True)
class AuditLogEntry:
    """Immutable representation of an audit log record.

    Attributes:
        audit_log_id: Record identifier.
        action: AuditAction value.
        entity_type: Kind of entity affected.
        entity_id: Identifier of the affected entity.
        user_id: Acting user, if known.
        username: Acting user's login name, filled in by queries.
        details: Free-form context.
        ip_address: Client IP address.
        user_agent: Client user agent.
        created_at: When the record was written.
    """

    audit_log_id: uuid.UUID
    action: str
    entity_type: str
    entity_id: str | None
    user_id: uuid.UUID | None
    details: dict[str, Any] | None
    ip_address: str | None
    user_agent: str | None
    created_at: datetime
    username: str | None = None


class AuditLogService:
    """Append and query audit records.

    Example:
        audit = AuditLogService(session)
        await audit.record(
            actor,
            AuditAction.APPROVE,
            EntityType.SHIPMENT,
            shipment.shipment_id,
            details={"shipment_code": shipment.shipment_code},
        )
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(
        self,
        *,
        action: AuditAction | str,
        entity_type: EntityType | str,
        entity_id: Any = None,
        user_id: uuid.UUID | None = None,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuditLogEntry | None:
        """Append a record to the audit log.

        Never raises. A failed write is logged and None is returned.

        Returns:
            The written entry, or None if the write failed.
        """
        from shipment_portal.db.models.audit import AuditLog

        action_str = action.value if isinstance(action, AuditAction) else action
        entity_type_str = entity_type.value if isinstance(entity_type, EntityType) else entity_type
        entity_id_str = str(entity_id) if entity_id is not None else None

        record = AuditLog(
            audit_log_id=uuid.uuid4(),
            created_at=datetime.now(UTC),
            user_id=user_id,
            action=action_str,
            entity_type=entity_type_str,
            entity_id=entity_id_str,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        try:
            async with self._session.begin_nested():
                self._session.add(record)
                await self._session.flush()
        except Exception:
            logger.exception(
                "Failed to write audit log entry",
                extra={
                    "action": action_str,
                    "entity_type": entity_type_str,
                    "entity_id": entity_id_str,
                },
            )
            return None

        return _to_entry(record)

    async def record(
        self,
        actor: Actor | None,
        action: AuditAction,
        entity_type: EntityType,
        entity_id: Any = None,
        *,
        details: dict[str, Any] | None = None,
    ) -> AuditLogEntry | None:
        """Append a record attributed to an actor, carrying its request context."""
        return await self.append(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=actor.user_id if actor else None,
            details=details,
            ip_address=actor.ip_address if actor else None,
            user_agent=actor.user_agent if actor else None,
        )

    async def query(
        self,
        *,
        action: str | None = None,
        entity_type: str | None = None,
        start_date: datetime | date | None = None,
        end_date: datetime | date | None = None,
        limit: int = DEFAULT_QUERY_LIMIT,
        offset: int = 0,
    ) -> list[AuditLogEntry]:
        """Query audit records, newest first.

        Plain dates are widened to whole days: ``start_date`` from midnight,
        ``end_date`` through the end of that day.
        """
        from sqlalchemy import select

        from shipment_portal.db.models.audit import AuditLog
        from shipment_portal.db.models.users import User

        query = (
            select(AuditLog, User.username)
            .outerjoin(User, AuditLog.user_id == User.user_id)
            .order_by(AuditLog.created_at.desc())
        )

        if action:
            query = query.where(AuditLog.action == action)
        if entity_type:
            query = query.where(AuditLog.entity_type == entity_type)
        if start_date is not None:
            query = query.where(AuditLog.created_at >= _day_bound(start_date, end_of_day=False))
        if end_date is not None:
            query = query.where(AuditLog.created_at <= _day_bound(end_date, end_of_day=True))

        limit = max(1, min(limit, MAX_QUERY_LIMIT))
        query = query.limit(limit).offset(max(offset, 0))

        result = await self._session.execute(query)
        return [_to_entry(record, username) for record, username in result.all()]


def _day_bound(value: datetime | date, *, end_of_day: bool) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    return datetime.combine(value, time.max if end_of_day else time.min, tzinfo=UTC)


def _to_entry(record: Any, username: str | None = None) -> AuditLogEntry:
    return AuditLogEntry(
        audit_log_id=record.audit_log_id,
        action=record.action,
        entity_type=record.entity_type,
        entity_id=record.entity_id,
        user_id=record.user_id,
        details=record.details,
        ip_address=record.ip_address,
        user_agent=record.user_agent,
        created_at=record.created_at,
        username=username,
    )

"""Shipment lifecycle state machine service.

This module owns the shipment ``status`` field. Every mutation goes through
ShipmentLifecycleService, which:
- Checks the actor's role against the capability table before touching state
- Loads the shipment row with SELECT ... FOR UPDATE
- Validates the source state and any preconditions (document completeness)
- Persists the change, guarded by the ``version`` counter
- Appends an audit record, commits, then dispatches a notification

The state machine:

    created ----------> approved
       |   \\
       |    ----------> rejected
       v
    changes_requested --> approved / rejected / changes_requested

``new``, ``in_transit``, ``delivered`` and ``cancelled`` exist in the enum
but no transition assigns them.
"""

from __future__ import annotations

import asyncio
import logging
import math
import secrets
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any, ClassVar

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from shipment_portal.db import LIKE_ESCAPE, escape_like
from shipment_portal.db.models.base import ShipmentStatus, TransportMode, UserRole
from shipment_portal.db.models.shipments import Document, Shipment
from shipment_portal.db.models.users import User
from shipment_portal.services.audit_log import AuditAction, EntityType
from shipment_portal.services.authz import (
    Action,
    can_view_all_shipments,
    can_view_shipment,
    require_allowed,
)
from shipment_portal.services.document_check import check_documents
from shipment_portal.services.email import LifecycleEvent, NotificationKind
from shipment_portal.services.errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from shipment_portal.services.storage import StorageError

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from shipment_portal.services.audit_log import AuditLogService
    from shipment_portal.services.authz import Actor
    from shipment_portal.services.email import ShipmentNotifier
    from shipment_portal.services.storage import DocumentStore

logger = logging.getLogger(__name__)


SHIPMENT_CODE_PREFIX = "SHP"
MAX_CODE_ATTEMPTS = 5
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
RECENT_SHIPMENTS = 5

REQUIRED_FIELDS: tuple[str, ...] = (
    "exporter_name",
    "exporter_address",
    "vendor_name",
    "vendor_address",
    "receiver_name",
    "receiver_address",
    "item_description",
    "weight",
    "value",
    "pickup_date",
    "expected_delivery_date",
    "mode_of_transport",
)

OPTIONAL_FIELDS: tuple[str, ...] = (
    "exporter_contact",
    "exporter_email",
    "vendor_contact",
    "vendor_email",
    "receiver_contact",
    "receiver_email",
    "weight_unit",
    "dimensions_length",
    "dimensions_width",
    "dimensions_height",
    "dimensions_unit",
    "currency",
    "invoice_no",
    "invoice_item_count",
    "customs_r_form",
    "bl_awb_no",
    "container_no",
    "container_type",
    "cbm",
    "gross_weight",
    "package_count",
    "cleared_date",
    "expense_macl",
    "expense_mpl",
    "expense_mcs",
    "expense_transportation",
    "expense_liner",
)

EDITABLE_FIELDS: frozenset[str] = frozenset(REQUIRED_FIELDS + OPTIONAL_FIELDS)

# Only the engine may write these
PROTECTED_FIELDS: frozenset[str] = frozenset(
    {
        "shipment_id",
        "shipment_code",
        "status",
        "rejection_reason",
        "created_by",
        "last_updated_by",
        "version",
        "created_at",
        "updated_at",
    }
)

FLOAT_FIELDS: frozenset[str] = frozenset(
    {
        "weight",
        "value",
        "dimensions_length",
        "dimensions_width",
        "dimensions_height",
        "cbm",
        "gross_weight",
        "expense_macl",
        "expense_mpl",
        "expense_mcs",
        "expense_transportation",
        "expense_liner",
    }
)
DATE_FIELDS: frozenset[str] = frozenset({"pickup_date", "expected_delivery_date", "cleared_date"})

DEFAULTS: dict[str, Any] = {
    "weight_unit": "kg",
    "dimensions_unit": "cm",
    "currency": "USD",
}


@dataclass(frozen=True, slots=True)
class ShipmentPage:
    """One page of a shipment listing.

    Attributes:
        items: Shipments on this page, newest first.
        total: Number of shipments matching the filters.
        limit: Page size used.
        offset: Offset used.
        pages: Total number of pages.
    """

    items: list[Shipment]
    total: int
    limit: int
    offset: int
    pages: int


@dataclass(frozen=True, slots=True)
class ShipmentStatistics:
    """Dashboard counts and the most recent shipments."""

    total: int
    pending_approval: int
    approved: int
    rejected: int
    changes_requested: int
    in_transit: int
    delivered: int
    recent: list[Shipment] = field(default_factory=list)


class ShipmentLifecycleService:
    """Service for shipment creation, edits, and review transitions.

    Example:
        service = ShipmentLifecycleService(session, audit=audit, notifier=notifier)
        shipment = await service.approve(actor, shipment_id)
    """

    EDITABLE_STATES: ClassVar[frozenset[ShipmentStatus]] = frozenset(
        {ShipmentStatus.NEW, ShipmentStatus.CREATED, ShipmentStatus.CHANGES_REQUESTED}
    )
    REVIEWABLE_STATES: ClassVar[frozenset[ShipmentStatus]] = frozenset(
        {ShipmentStatus.CREATED, ShipmentStatus.CHANGES_REQUESTED}
    )

    # action -> (legal source states, target state or None when status is kept)
    TRANSITIONS: ClassVar[dict[Action, tuple[frozenset[ShipmentStatus], ShipmentStatus | None]]] = {
        Action.UPDATE: (EDITABLE_STATES, None),
        Action.APPROVE: (REVIEWABLE_STATES, ShipmentStatus.APPROVED),
        Action.REJECT: (REVIEWABLE_STATES, ShipmentStatus.REJECTED),
        Action.REQUEST_CHANGES: (REVIEWABLE_STATES, ShipmentStatus.CHANGES_REQUESTED),
    }

    ILLEGAL_STATE_MESSAGES: ClassVar[dict[Action, str]] = {
        Action.UPDATE: "Cannot update {status} shipment",
        Action.APPROVE: "Cannot approve shipment with status: {status}",
        Action.REJECT: "Cannot reject shipment with status: {status}",
        Action.REQUEST_CHANGES: "Cannot request changes for shipment with status: {status}",
    }

    AUDIT_ACTIONS: ClassVar[dict[Action, AuditAction]] = {
        Action.UPDATE: AuditAction.UPDATE,
        Action.APPROVE: AuditAction.APPROVE,
        Action.REJECT: AuditAction.REJECT,
        Action.REQUEST_CHANGES: AuditAction.REQUEST_CHANGES,
    }

    def __init__(
        self,
        session: AsyncSession,
        *,
        audit: AuditLogService,
        notifier: ShipmentNotifier | None = None,
        storage: DocumentStore | None = None,
    ) -> None:
        self._session = session
        self._audit = audit
        self._notifier = notifier
        self._storage = storage

    # -------------------------------------------------------------------
    # State table
    # -------------------------------------------------------------------

    def is_legal_source(self, action: Action, status: ShipmentStatus) -> bool:
        """Check whether an action may start from the given status."""
        sources, _ = self.TRANSITIONS[action]
        return status in sources

    def _require_legal_source(self, action: Action, shipment: Shipment) -> None:
        if self.is_legal_source(action, shipment.status):
            return
        logger.warning(
            "Illegal transition attempted",
            extra={
                "shipment_id": str(shipment.shipment_id),
                "action": action.value,
                "status": shipment.status.value,
            },
        )
        raise ConflictError(
            self.ILLEGAL_STATE_MESSAGES[action].format(status=shipment.status.value),
            current_status=shipment.status.value,
        )

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------

    async def get_shipment(
        self, actor: Actor, shipment_id: UUID
    ) -> tuple[Shipment, list[Document]]:
        """Fetch a shipment and its documents, newest document first.

        Clearance managers get NotFoundError for shipments they did not create.
        """
        result = await self._session.execute(
            select(Shipment).where(Shipment.shipment_id == shipment_id)
        )
        shipment = result.scalar_one_or_none()
        if shipment is None or not can_view_shipment(actor, shipment.created_by):
            raise NotFoundError("Shipment", shipment_id)

        docs = await self._session.execute(
            select(Document)
            .where(Document.shipment_id == shipment_id)
            .order_by(Document.uploaded_at.desc())
        )
        return shipment, list(docs.scalars().all())

    async def list_shipments(
        self,
        actor: Actor,
        *,
        status: str | None = None,
        mode: str | None = None,
        search: str | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> ShipmentPage:
        """List visible shipments with optional filters, newest first."""
        conditions = self._visibility_conditions(actor)

        if status:
            try:
                conditions.append(Shipment.status == ShipmentStatus(status))
            except ValueError as e:
                raise ValidationError(f"Invalid status filter: {status}") from e
        if mode:
            try:
                conditions.append(Shipment.mode_of_transport == TransportMode(mode))
            except ValueError as e:
                raise ValidationError(f"Invalid mode filter: {mode}") from e
        if search:
            pattern = f"%{escape_like(search.strip())}%"
            conditions.append(
                or_(
                    Shipment.shipment_code.ilike(pattern, escape=LIKE_ESCAPE),
                    Shipment.exporter_name.ilike(pattern, escape=LIKE_ESCAPE),
                    Shipment.receiver_name.ilike(pattern, escape=LIKE_ESCAPE),
                )
            )

        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(offset, 0)

        total = await self._session.scalar(
            select(func.count()).select_from(Shipment).where(*conditions)
        )
        total = int(total or 0)

        result = await self._session.execute(
            select(Shipment)
            .where(*conditions)
            .order_by(Shipment.created_at.desc())
            .limit(limit)
            .offset(offset)
        )

        return ShipmentPage(
            items=list(result.scalars().all()),
            total=total,
            limit=limit,
            offset=offset,
            pages=math.ceil(total / limit),
        )

    async def get_statistics(
        self,
        actor: Actor,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> ShipmentStatistics:
        """Per-status counts plus the most recent shipments.

        The date range filters on pickup date, both ends inclusive.
        """
        conditions = self._visibility_conditions(actor)
        if date_from is not None:
            conditions.append(Shipment.pickup_date >= date_from)
        if date_to is not None:
            conditions.append(Shipment.pickup_date <= date_to)

        rows = await self._session.execute(
            select(Shipment.status, func.count())
            .where(*conditions)
            .group_by(Shipment.status)
        )
        counts = {status: int(count) for status, count in rows.all()}

        recent = await self._session.execute(
            select(Shipment)
            .where(*conditions)
            .order_by(Shipment.created_at.desc())
            .limit(RECENT_SHIPMENTS)
        )

        return ShipmentStatistics(
            total=sum(counts.values()),
            pending_approval=counts.get(ShipmentStatus.CREATED, 0),
            approved=counts.get(ShipmentStatus.APPROVED, 0),
            rejected=counts.get(ShipmentStatus.REJECTED, 0),
            changes_requested=counts.get(ShipmentStatus.CHANGES_REQUESTED, 0),
            in_transit=counts.get(ShipmentStatus.IN_TRANSIT, 0),
            delivered=counts.get(ShipmentStatus.DELIVERED, 0),
            recent=list(recent.scalars().all()),
        )

    def _visibility_conditions(self, actor: Actor) -> list[Any]:
        if can_view_all_shipments(actor):
            return []
        return [Shipment.created_by == actor.user_id]

    # -------------------------------------------------------------------
    # Create / update / delete
    # -------------------------------------------------------------------

    async def create_shipment(self, actor: Actor, data: dict[str, Any]) -> Shipment:
        """Create a shipment in ``created`` status.

        All field problems are collected and reported together; nothing is
        written unless every check passes.

        Raises:
            PermissionDeniedError: Actor may not create shipments.
            ValidationError: Missing or invalid fields.
        """
        require_allowed(actor, Action.CREATE)

        values = {k: v for k, v in data.items() if k in EDITABLE_FIELDS}
        values, errors = normalize_shipment_fields(values)
        errors = check_required_fields(values) + errors
        errors += check_business_rules(values)
        if errors:
            raise _validation_failure(errors)

        for name, default in DEFAULTS.items():
            if not values.get(name):
                values[name] = default

        shipment = await self._insert_with_unique_code(actor, values)

        logger.info(
            "Shipment created",
            extra={
                "shipment_id": str(shipment.shipment_id),
                "shipment_code": shipment.shipment_code,
                "user_id": str(actor.user_id),
            },
        )

        await self._audit.record(
            actor,
            AuditAction.CREATE,
            EntityType.SHIPMENT,
            shipment.shipment_id,
            details={
                "shipment_code": shipment.shipment_code,
                "mode_of_transport": shipment.mode_of_transport.value,
            },
        )
        await self._commit(shipment.shipment_id)

        await self._dispatch(NotificationKind.SHIPMENT_CREATED, shipment, actor)
        return shipment

    async def _insert_with_unique_code(self, actor: Actor, values: dict[str, Any]) -> Shipment:
        now = datetime.now(UTC)
        for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
            shipment = Shipment(
                shipment_code=generate_shipment_code(now.date()),
                status=ShipmentStatus.CREATED,
                created_by=actor.user_id,
                last_updated_by=actor.user_id,
                created_at=now,
                updated_at=now,
                **values,
            )
            try:
                async with self._session.begin_nested():
                    self._session.add(shipment)
                    await self._session.flush()
            except IntegrityError:
                logger.warning(
                    "Shipment code collision, retrying",
                    extra={"shipment_code": shipment.shipment_code, "attempt": attempt},
                )
                continue
            return shipment

        msg = "Could not allocate a unique shipment code"
        raise InternalError(msg)

    async def update_shipment(
        self,
        actor: Actor,
        shipment_id: UUID,
        changes: dict[str, Any],
        *,
        expected_version: int | None = None,
    ) -> Shipment:
        """Edit business fields of a shipment. Status is never changed here.

        Raises:
            PermissionDeniedError: Not the creator (or admin), or wrong role.
            NotFoundError: No such shipment.
            ConflictError: Status not editable, or stale ``expected_version``.
            ValidationError: Protected or invalid fields.
        """
        require_allowed(actor, Action.UPDATE, is_owner=True)

        protected = sorted(k for k in changes if k in PROTECTED_FIELDS)
        if protected:
            raise ValidationError(
                "These fields cannot be changed directly",
                details=[f"{name} is read-only" for name in protected],
            )

        shipment = await self._load_for_update(shipment_id)
        require_allowed(actor, Action.UPDATE, is_owner=actor.owns(shipment.created_by))
        self._require_legal_source(Action.UPDATE, shipment)

        if expected_version is not None and expected_version != shipment.version:
            raise ConflictError(
                "Shipment was modified by someone else, reload and try again",
                current_status=shipment.status.value,
            )

        values = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
        values, errors = normalize_shipment_fields(values)

        # Required fields may be omitted but not cleared
        cleared = [k for k in REQUIRED_FIELDS if k in values and values[k] in (None, "")]
        if cleared:
            errors.insert(0, f"Required fields cannot be empty: {', '.join(cleared)}")

        merged = {name: getattr(shipment, name) for name in REQUIRED_FIELDS}
        merged.update({k: v for k, v in values.items() if k in REQUIRED_FIELDS})
        if not errors:
            errors += check_business_rules(merged)
        if errors:
            raise _validation_failure(errors)

        changed = sorted(k for k, v in values.items() if getattr(shipment, k) != v)
        for name in changed:
            setattr(shipment, name, values[name])
        shipment.last_updated_by = actor.user_id
        shipment.updated_at = datetime.now(UTC)

        await self._flush(shipment.shipment_id)

        logger.info(
            "Shipment updated",
            extra={
                "shipment_id": str(shipment_id),
                "user_id": str(actor.user_id),
                "fields": changed,
            },
        )

        await self._audit.record(
            actor,
            AuditAction.UPDATE,
            EntityType.SHIPMENT,
            shipment.shipment_id,
            details={"shipment_code": shipment.shipment_code, "fields": changed},
        )
        await self._commit(shipment.shipment_id)
        return shipment

    async def delete_shipment(self, actor: Actor, shipment_id: UUID) -> None:
        """Delete a shipment and its documents. Admin only.

        Document rows go with the shipment through the foreign key cascade.
        Stored files are removed afterwards on a best-effort basis.
        """
        require_allowed(actor, Action.DELETE)

        shipment = await self._load_for_update(shipment_id)
        keys_result = await self._session.execute(
            select(Document.storage_key).where(Document.shipment_id == shipment_id)
        )
        storage_keys = list(keys_result.scalars().all())
        shipment_code = shipment.shipment_code

        await self._session.delete(shipment)
        await self._flush(shipment_id)

        await self._audit.record(
            actor,
            AuditAction.DELETE,
            EntityType.SHIPMENT,
            shipment_id,
            details={"shipment_code": shipment_code, "documents_deleted": len(storage_keys)},
        )
        await self._commit(shipment_id)

        logger.info(
            "Shipment deleted",
            extra={"shipment_id": str(shipment_id), "user_id": str(actor.user_id)},
        )

        await self._remove_files(storage_keys)

    async def _remove_files(self, keys: list[str]) -> None:
        if self._storage is None:
            return
        for key in keys:
            try:
                await asyncio.to_thread(self._storage.delete, key)
            except StorageError:
                logger.exception("Failed to remove document file", extra={"storage_key": key})

    # -------------------------------------------------------------------
    # Review transitions
    # -------------------------------------------------------------------

    async def approve(self, actor: Actor, shipment_id: UUID) -> Shipment:
        """Approve a shipment once its mandatory documents are attached.

        Raises:
            PermissionDeniedError: Actor is not accounts or admin.
            NotFoundError: No such shipment.
            ConflictError: Not in a reviewable status.
            ValidationError: Missing documents; ``missing_documents`` lists them.
        """
        require_allowed(actor, Action.APPROVE)
        shipment = await self._load_for_update(shipment_id)
        self._require_legal_source(Action.APPROVE, shipment)

        types_result = await self._session.execute(
            select(Document.document_type).where(Document.shipment_id == shipment_id)
        )
        check = check_documents(types_result.scalars().all(), shipment.mode_of_transport)
        if not check.is_valid:
            logger.info(
                "Approval blocked by missing documents",
                extra={
                    "shipment_id": str(shipment_id),
                    "missing_documents": list(check.missing_documents),
                },
            )
            raise ValidationError(
                "Cannot approve shipment: missing required documents",
                details=list(check.errors),
                missing_documents=list(check.missing_documents),
            )

        return await self._apply(
            actor,
            Action.APPROVE,
            shipment,
            rejection_reason=None,
            notification=NotificationKind.SHIPMENT_APPROVED,
        )

    async def reject(self, actor: Actor, shipment_id: UUID, reason: str | None) -> Shipment:
        """Reject a shipment. The reason is required and stored verbatim."""
        require_allowed(actor, Action.REJECT)
        if reason is None or not reason.strip():
            raise ValidationError("Rejection reason is required")

        shipment = await self._load_for_update(shipment_id)
        self._require_legal_source(Action.REJECT, shipment)

        return await self._apply(
            actor,
            Action.REJECT,
            shipment,
            rejection_reason=reason,
            notification=NotificationKind.SHIPMENT_REJECTED,
            context={"reason": reason},
        )

    async def request_changes(
        self, actor: Actor, shipment_id: UUID, message: str | None = None
    ) -> Shipment:
        """Send a shipment back to its creator for edits."""
        require_allowed(actor, Action.REQUEST_CHANGES)
        shipment = await self._load_for_update(shipment_id)
        self._require_legal_source(Action.REQUEST_CHANGES, shipment)

        message = message.strip() if message and message.strip() else None
        return await self._apply(
            actor,
            Action.REQUEST_CHANGES,
            shipment,
            rejection_reason=message,
            notification=NotificationKind.CHANGES_REQUESTED,
            context={"message": message},
        )

    async def _apply(
        self,
        actor: Actor,
        action: Action,
        shipment: Shipment,
        *,
        rejection_reason: str | None,
        notification: NotificationKind,
        context: dict[str, Any] | None = None,
    ) -> Shipment:
        _, target = self.TRANSITIONS[action]
        from_status = shipment.status

        shipment.status = target
        shipment.rejection_reason = rejection_reason
        shipment.last_updated_by = actor.user_id
        shipment.updated_at = datetime.now(UTC)

        await self._flush(shipment.shipment_id)

        logger.info(
            "Shipment transition completed",
            extra={
                "shipment_id": str(shipment.shipment_id),
                "from_status": from_status.value,
                "to_status": target.value,
                "user_id": str(actor.user_id),
            },
        )

        details = {
            "shipment_code": shipment.shipment_code,
            "from_status": from_status.value,
            "to_status": target.value,
        }
        if rejection_reason:
            details["reason"] = rejection_reason
        await self._audit.record(
            actor,
            self.AUDIT_ACTIONS[action],
            EntityType.SHIPMENT,
            shipment.shipment_id,
            details=details,
        )
        await self._commit(shipment.shipment_id)

        await self._dispatch(notification, shipment, actor, context or {})
        return shipment

    # -------------------------------------------------------------------
    # Persistence helpers
    # -------------------------------------------------------------------

    async def _load_for_update(self, shipment_id: UUID) -> Shipment:
        result = await self._session.execute(
            select(Shipment).where(Shipment.shipment_id == shipment_id).with_for_update()
        )
        shipment = result.scalar_one_or_none()
        if shipment is None:
            raise NotFoundError("Shipment", shipment_id)
        return shipment

    async def _flush(self, shipment_id: UUID) -> None:
        try:
            await self._session.flush()
        except StaleDataError as e:
            raise await self._stale(shipment_id) from e

    async def _commit(self, shipment_id: UUID) -> None:
        try:
            await self._session.commit()
        except StaleDataError as e:
            raise await self._stale(shipment_id) from e

    async def _stale(self, shipment_id: UUID) -> ConflictError:
        """Roll back a lost version race and report the status now stored."""
        await self._session.rollback()
        current = await self._session.scalar(
            select(Shipment.status).where(Shipment.shipment_id == shipment_id)
        )
        return ConflictError(
            "Shipment was modified by someone else, reload and try again",
            current_status=current.value if isinstance(current, ShipmentStatus) else None,
        )

    # -------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------

    async def _dispatch(
        self,
        kind: NotificationKind,
        shipment: Shipment,
        actor: Actor,
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Resolve recipients and send. Runs after commit and never raises."""
        if self._notifier is None:
            return

        try:
            recipients = await self._resolve_recipients(kind, shipment)
            event = LifecycleEvent(
                kind=kind,
                recipients=recipients,
                shipment_code=shipment.shipment_code,
                context={
                    "shipment_id": str(shipment.shipment_id),
                    "exporter_name": shipment.exporter_name,
                    "receiver_name": shipment.receiver_name,
                    "mode_of_transport": shipment.mode_of_transport.value,
                    "pickup_date": shipment.pickup_date.isoformat(),
                    "actor_name": actor.username or str(actor.user_id),
                    **(extra or {}),
                },
            )
            await self._notifier.notify(event)
        except Exception:
            logger.exception(
                "Notification dispatch failed",
                extra={"shipment_id": str(shipment.shipment_id), "kind": kind.value},
            )

    async def _resolve_recipients(
        self, kind: NotificationKind, shipment: Shipment
    ) -> tuple[str, ...]:
        if kind == NotificationKind.SHIPMENT_CREATED:
            query = select(User.email).where(
                User.role == UserRole.ACCOUNTS,
                User.is_active.is_(True),
            )
        else:
            if shipment.created_by is None:
                return ()
            query = select(User.email).where(User.user_id == shipment.created_by)

        result = await self._session.execute(query)
        return tuple(email for email in result.scalars().all() if email)


# ---------------------------------------------------------------------------
# Field validation
# ---------------------------------------------------------------------------


def generate_shipment_code(on: date | None = None) -> str:
    """Build a shipment code of the form SHP-YYYYMMDD-NNNNN."""
    on = on or datetime.now(UTC).date()
    return f"{SHIPMENT_CODE_PREFIX}-{on:%Y%m%d}-{secrets.randbelow(100_000):05d}"


def normalize_shipment_fields(values: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Coerce raw field values to their column types.

    Blank strings become None. Returns the coerced values and a list of
    type errors; fields that failed to coerce are dropped.
    """
    cleaned: dict[str, Any] = {}
    errors: list[str] = []

    for name, raw in values.items():
        value = raw.strip() if isinstance(raw, str) else raw
        if value == "":
            value = None

        if value is None:
            cleaned[name] = None
            continue

        try:
            if name in FLOAT_FIELDS:
                value = float(value)
                if math.isnan(value) or math.isinf(value):
                    raise ValueError(value)
            elif name in DATE_FIELDS:
                if isinstance(value, datetime):
                    value = value.date()
                elif not isinstance(value, date):
                    value = date.fromisoformat(str(value)[:10])
            elif name == "mode_of_transport":
                value = TransportMode(value.value if isinstance(value, TransportMode) else value)
            elif name == "invoice_item_count":
                value = int(value)
        except (TypeError, ValueError):
            errors.append(_type_error(name))
            continue

        cleaned[name] = value

    return cleaned, errors


def check_required_fields(values: dict[str, Any]) -> list[str]:
    missing = [name for name in REQUIRED_FIELDS if values.get(name) in (None, "")]
    if missing:
        return [f"Missing required fields: {', '.join(missing)}"]
    return []


def check_business_rules(values: dict[str, Any]) -> list[str]:
    """Positivity and date ordering checks on whatever values are present."""
    errors: list[str] = []

    weight = values.get("weight")
    if weight is not None and weight <= 0:
        errors.append("Weight must be a positive number")

    value = values.get("value")
    if value is not None and value <= 0:
        errors.append("Value must be a positive number")

    pickup = values.get("pickup_date")
    delivery = values.get("expected_delivery_date")
    if pickup is not None and delivery is not None and pickup > delivery:
        errors.append("Pickup date must be on or before expected delivery date")

    return errors


def _type_error(name: str) -> str:
    label = name.replace("_", " ").capitalize()
    if name in FLOAT_FIELDS or name == "invoice_item_count":
        return f"{label} must be a number"
    if name in DATE_FIELDS:
        return f"{label} must be a valid date (YYYY-MM-DD)"
    if name == "mode_of_transport":
        return "Mode of transport must be one of: air, sea, road"
    return f"{label} is invalid"


def _validation_failure(errors: list[str]) -> ValidationError:
    message = errors[0] if len(errors) == 1 else "Shipment validation failed"
    return ValidationError(message, details=errors)

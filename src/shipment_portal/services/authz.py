"""Role-based authorization for shipment portal operations.

This module provides:
- The closed set of gated actions
- A single capability table mapping each action to the roles allowed to run it
- Ownership rules for actions scoped to the actor's own shipments
- The Actor principal passed into every service call

Admin is a superuser: every check passes for it, ownership included.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from shipment_portal.db.models.base import UserRole
from shipment_portal.services.errors import PermissionDeniedError

if TYPE_CHECKING:
    from uuid import UUID

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Action definitions
# ---------------------------------------------------------------------------


class Action(str, Enum):
    """Operations gated by role."""

    # Shipment lifecycle
    CREATE = "create"
    UPDATE = "update"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_CHANGES = "request_changes"
    DELETE = "delete"

    # Documents
    UPLOAD_DOCUMENT = "upload_document"
    DELETE_DOCUMENT = "delete_document"

    # Reads beyond the actor's own shipments
    VIEW_ALL_SHIPMENTS = "view_all_shipments"

    # Administration
    VIEW_AUDIT_LOGS = "view_audit_logs"
    MANAGE_USERS = "manage_users"


# ---------------------------------------------------------------------------
# Capability table
# ---------------------------------------------------------------------------

# Roles allowed per action. Admin is implicit and never listed.
ACTION_ROLES: dict[Action, frozenset[UserRole]] = {
    Action.CREATE: frozenset({UserRole.CLEARANCE_MANAGER}),
    Action.UPDATE: frozenset({UserRole.CLEARANCE_MANAGER}),
    Action.APPROVE: frozenset({UserRole.ACCOUNTS}),
    Action.REJECT: frozenset({UserRole.ACCOUNTS}),
    Action.REQUEST_CHANGES: frozenset({UserRole.ACCOUNTS}),
    Action.DELETE: frozenset(),
    Action.UPLOAD_DOCUMENT: frozenset({UserRole.CLEARANCE_MANAGER}),
    Action.DELETE_DOCUMENT: frozenset({UserRole.CLEARANCE_MANAGER}),
    Action.VIEW_ALL_SHIPMENTS: frozenset({UserRole.ACCOUNTS}),
    Action.VIEW_AUDIT_LOGS: frozenset(),
    Action.MANAGE_USERS: frozenset(),
}

# Actions a non-admin may only perform on resources they own
OWNER_SCOPED: frozenset[Action] = frozenset(
    {
        Action.UPDATE,
        Action.UPLOAD_DOCUMENT,
        Action.DELETE_DOCUMENT,
    }
)

DENIAL_MESSAGES: dict[Action, str] = {
    Action.CREATE: "Only clearance managers can create shipments",
    Action.UPDATE: "You do not have permission to update this shipment",
    Action.APPROVE: "Only accounts managers can approve shipments",
    Action.REJECT: "Only accounts managers can reject shipments",
    Action.REQUEST_CHANGES: "Only accounts managers can request changes",
    Action.DELETE: "Only admins can delete shipments",
    Action.UPLOAD_DOCUMENT: "You do not have permission to upload documents for this shipment",
    Action.DELETE_DOCUMENT: "You do not have permission to delete this document",
    Action.VIEW_ALL_SHIPMENTS: "You do not have permission to view all shipments",
    Action.VIEW_AUDIT_LOGS: "Only admins can view audit logs",
    Action.MANAGE_USERS: "Only admins can manage users",
}


# ---------------------------------------------------------------------------
# Principal
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Actor:
    """The authenticated identity performing an operation.

    Attributes:
        user_id: Account identifier.
        role: Role carried for the whole request.
        username: Login name, for logs and emails.
        email: Contact address.
        ip_address: Client IP, recorded in the audit trail.
        user_agent: Client user agent, recorded in the audit trail.
    """

    user_id: UUID
    role: UserRole
    username: str = ""
    email: str = ""
    ip_address: str | None = None
    user_agent: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def owns(self, owner_id: UUID | None) -> bool:
        """Check whether a resource owner id refers to this actor."""
        return owner_id is not None and owner_id == self.user_id


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def is_allowed(role: UserRole | str, action: Action, *, is_owner: bool = True) -> bool:
    """Decide whether a role may perform an action.

    Args:
        role: Actor role.
        action: Operation being attempted.
        is_owner: Whether the actor owns the target resource. Only consulted
            for owner-scoped actions.

    Returns:
        True if the action is permitted.
    """
    role = UserRole(role)
    if role == UserRole.ADMIN:
        return True
    if role not in ACTION_ROLES[action]:
        return False
    return is_owner or action not in OWNER_SCOPED


def require_allowed(actor: Actor, action: Action, *, is_owner: bool = True) -> None:
    """Raise PermissionDeniedError unless the actor may perform the action."""
    if is_allowed(actor.role, action, is_owner=is_owner):
        return

    logger.warning(
        "Permission denied",
        extra={
            "user_id": str(actor.user_id),
            "role": actor.role.value,
            "action": action.value,
            "is_owner": is_owner,
        },
    )
    raise PermissionDeniedError(DENIAL_MESSAGES[action], action=action.value)


def can_view_all_shipments(actor: Actor) -> bool:
    """Admins and accounts see every shipment; clearance managers only their own."""
    return is_allowed(actor.role, Action.VIEW_ALL_SHIPMENTS)


def can_view_shipment(actor: Actor, created_by: UUID | None) -> bool:
    return can_view_all_shipments(actor) or actor.owns(created_by)

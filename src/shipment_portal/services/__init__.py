"""Domain services for the shipment portal."""

from shipment_portal.services.audit_log import (
    AuditAction,
    AuditLogEntry,
    AuditLogService,
    EntityType,
)
from shipment_portal.services.authz import Action, Actor, is_allowed, require_allowed
from shipment_portal.services.document_check import DocumentCheckResult, check_documents
from shipment_portal.services.documents import DocumentService
from shipment_portal.services.email import LifecycleEvent, NotificationKind, ShipmentNotifier
from shipment_portal.services.errors import (
    AuthenticationError,
    ConflictError,
    DuplicateError,
    InternalError,
    LockedError,
    NotFoundError,
    PermissionDeniedError,
    ShipmentPortalError,
    ValidationError,
)
from shipment_portal.services.identity import IdentityService, TokenService
from shipment_portal.services.lifecycle import ShipmentLifecycleService
from shipment_portal.services.storage import DocumentStore
from shipment_portal.services.users import UserManagementService

__all__ = [
    "Action",
    "Actor",
    "AuditAction",
    "AuditLogEntry",
    "AuditLogService",
    "AuthenticationError",
    "ConflictError",
    "DocumentCheckResult",
    "DocumentService",
    "DocumentStore",
    "DuplicateError",
    "EntityType",
    "IdentityService",
    "InternalError",
    "LifecycleEvent",
    "LockedError",
    "NotFoundError",
    "NotificationKind",
    "PermissionDeniedError",
    "ShipmentLifecycleService",
    "ShipmentNotifier",
    "ShipmentPortalError",
    "TokenService",
    "UserManagementService",
    "ValidationError",
    "check_documents",
    "is_allowed",
    "require_allowed",
]

"""SQLAlchemy ORM models for the shipment portal.

- base: Common metadata, column aliases, and enums
- users: Accounts, refresh tokens, password reset tokens
- shipments: Shipments and their documents
- audit: Audit log records
"""

from shipment_portal.db.models.audit import AuditLog
from shipment_portal.db.models.base import (
    Base,
    DocumentType,
    ShipmentStatus,
    TransportMode,
    UserRole,
    metadata,
)
from shipment_portal.db.models.shipments import Document, Shipment
from shipment_portal.db.models.users import PasswordResetToken, RefreshToken, User

__all__ = [
    "AuditLog",
    "Base",
    "Document",
    "DocumentType",
    "PasswordResetToken",
    "RefreshToken",
    "Shipment",
    "ShipmentStatus",
    "TransportMode",
    "User",
    "UserRole",
    "metadata",
]

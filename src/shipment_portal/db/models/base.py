"""Base model definitions, column aliases, and shared enums.

This module provides:
- The declarative Base and its constraint naming scheme
- Reusable annotated column types for UUIDs and timestamps
- Enums shared by several tables
"""

import enum
import uuid
from datetime import datetime
from typing import Annotated

from sqlalchemy import DateTime, Enum, MetaData, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, mapped_column, registry

# Deterministic constraint names keep autogenerated migrations stable.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)

type_registry = registry()

# Primary keys are generated by Postgres
UUIDPrimaryKey = Annotated[
    uuid.UUID,
    mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
]

# Set by the database on insert
TimestampTZ = Annotated[
    datetime,
    mapped_column(DateTime(timezone=True), server_default=text("now()")),
]

OptionalTimestampTZ = Annotated[
    datetime | None,
    mapped_column(DateTime(timezone=True), nullable=True),
]

ShortString = Annotated[str, mapped_column(String(100))]
MediumString = Annotated[str, mapped_column(String(255))]


class Base(DeclarativeBase):
    """Declarative base for all shipment portal models."""

    metadata = metadata
    registry = type_registry


def pg_enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Build a Postgres enum column type that persists member values."""
    return Enum(
        enum_cls,
        name=name,
        create_constraint=True,
        values_callable=lambda members: [m.value for m in members],
    )


# =============================================================================
# Common Enums
# =============================================================================


class UserRole(enum.Enum):
    """Closed set of actor roles.

    Values:
        ADMIN: Superuser, allowed every operation
        ACCOUNTS: Reviews shipments (approve, reject, request changes)
        CLEARANCE_MANAGER: Creates and maintains their own shipments
    """

    ADMIN = "admin"
    ACCOUNTS = "accounts"
    CLEARANCE_MANAGER = "clearance_manager"


class ShipmentStatus(enum.Enum):
    """Shipment lifecycle states.

    States:
        NEW: Reserved, never assigned by any transition
        CREATED: Initial state after creation, awaiting review
        APPROVED: Accepted by accounts
        REJECTED: Refused by accounts with a reason
        CHANGES_REQUESTED: Returned to the creator for edits
        IN_TRANSIT: Reserved, never assigned by any transition
        DELIVERED: Reserved terminal state
        CANCELLED: Reserved terminal state
    """

    NEW = "new"
    CREATED = "created"
    APPROVED = "approved"
    REJECTED = "rejected"
    CHANGES_REQUESTED = "changes_requested"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class TransportMode(enum.Enum):
    """Mode of transport, drives the mandatory document set.

    Values:
        AIR: Requires an air waybill
        SEA: Requires a bill of lading
        ROAD: No mode-specific document
    """

    AIR = "air"
    SEA = "sea"
    ROAD = "road"


class DocumentType(enum.Enum):
    """Kinds of shipment paperwork.

    Values:
        INVOICE: Commercial invoice
        PACKING_LIST: Packing list
        BILL_OF_LADING: Bill of lading (sea)
        AIR_WAYBILL: Air waybill (air)
        OTHER: Anything else
    """

    INVOICE = "invoice"
    PACKING_LIST = "packing_list"
    BILL_OF_LADING = "bill_of_lading"
    AIR_WAYBILL = "air_waybill"
    OTHER = "other"

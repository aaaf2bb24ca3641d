"""Shipment aggregate and its attached documents."""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from datetime import date  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import BigInteger, Date, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shipment_portal.db.models.base import (
    Base,
    DocumentType,
    ShipmentStatus,
    TimestampTZ,
    TransportMode,
    UUIDPrimaryKey,
    pg_enum,
)


class Shipment(Base):
    """A consignment tracked through the approval lifecycle.

    ``status`` is only written by the lifecycle service. ``version`` is the
    optimistic concurrency counter; SQLAlchemy bumps it on every UPDATE and
    raises StaleDataError when the row changed underneath the session.
    """

    __tablename__ = "shipments"

    shipment_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    # Human-facing code, SHP-YYYYMMDD-NNNNN
    shipment_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)

    status: Mapped[ShipmentStatus] = mapped_column(
        pg_enum(ShipmentStatus, "shipment_status"),
        nullable=False,
        default=ShipmentStatus.CREATED,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.user_id", ondelete="SET NULL"),
        nullable=True,
    )
    last_updated_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.user_id", ondelete="SET NULL"),
        nullable=True,
    )

    # Parties
    exporter_name: Mapped[str] = mapped_column(String(255), nullable=False)
    exporter_address: Mapped[str] = mapped_column(Text, nullable=False)
    exporter_contact: Mapped[str | None] = mapped_column(String(100), nullable=True)
    exporter_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vendor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    vendor_address: Mapped[str] = mapped_column(Text, nullable=False)
    vendor_contact: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vendor_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    receiver_name: Mapped[str] = mapped_column(String(255), nullable=False)
    receiver_address: Mapped[str] = mapped_column(Text, nullable=False)
    receiver_contact: Mapped[str | None] = mapped_column(String(100), nullable=True)
    receiver_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Goods
    item_description: Mapped[str] = mapped_column(Text, nullable=False)
    weight: Mapped[float] = mapped_column(Numeric(12, 3, asdecimal=False), nullable=False)
    weight_unit: Mapped[str] = mapped_column(String(10), nullable=False, default="kg")
    dimensions_length: Mapped[float | None] = mapped_column(
        Numeric(10, 2, asdecimal=False), nullable=True
    )
    dimensions_width: Mapped[float | None] = mapped_column(
        Numeric(10, 2, asdecimal=False), nullable=True
    )
    dimensions_height: Mapped[float | None] = mapped_column(
        Numeric(10, 2, asdecimal=False), nullable=True
    )
    dimensions_unit: Mapped[str] = mapped_column(String(10), nullable=False, default="cm")
    value: Mapped[float] = mapped_column(Numeric(14, 2, asdecimal=False), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Schedule
    pickup_date: Mapped[date] = mapped_column(Date, nullable=False)
    expected_delivery_date: Mapped[date] = mapped_column(Date, nullable=False)
    mode_of_transport: Mapped[TransportMode] = mapped_column(
        pg_enum(TransportMode, "transport_mode"),
        nullable=False,
    )

    # Customs and logistics details, not used by lifecycle rules
    invoice_no: Mapped[str | None] = mapped_column(String(100), nullable=True)
    invoice_item_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    customs_r_form: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bl_awb_no: Mapped[str | None] = mapped_column(String(100), nullable=True)
    container_no: Mapped[str | None] = mapped_column(String(100), nullable=True)
    container_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    cbm: Mapped[float | None] = mapped_column(Numeric(10, 3, asdecimal=False), nullable=True)
    gross_weight: Mapped[float | None] = mapped_column(
        Numeric(12, 3, asdecimal=False), nullable=True
    )
    package_count: Mapped[str | None] = mapped_column(String(50), nullable=True)
    cleared_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expense_macl: Mapped[float | None] = mapped_column(
        Numeric(14, 2, asdecimal=False), nullable=True
    )
    expense_mpl: Mapped[float | None] = mapped_column(
        Numeric(14, 2, asdecimal=False), nullable=True
    )
    expense_mcs: Mapped[float | None] = mapped_column(
        Numeric(14, 2, asdecimal=False), nullable=True
    )
    expense_transportation: Mapped[float | None] = mapped_column(
        Numeric(14, 2, asdecimal=False), nullable=True
    )
    expense_liner: Mapped[float | None] = mapped_column(
        Numeric(14, 2, asdecimal=False), nullable=True
    )

    documents: Mapped[list[Document]] = relationship(
        "Document",
        back_populates="shipment",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": version}  # noqa: RUF012

    __table_args__ = (
        Index("ix_shipments_status", "status"),
        Index("ix_shipments_created_by", "created_by"),
        Index("ix_shipments_created_at", "created_at"),
        Index("ix_shipments_mode_of_transport", "mode_of_transport"),
    )


class Document(Base):
    """A file attached to a shipment, stored in the object store."""

    __tablename__ = "documents"

    document_id: Mapped[UUIDPrimaryKey]
    uploaded_at: Mapped[TimestampTZ]

    shipment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("shipments.shipment_id", ondelete="CASCADE"),
        nullable=False,
    )
    document_type: Mapped[DocumentType] = mapped_column(
        pg_enum(DocumentType, "document_type"),
        nullable=False,
    )

    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    sha256: Mapped[str] = mapped_column(String(64), nullable=False)

    uploaded_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.user_id", ondelete="SET NULL"),
        nullable=True,
    )

    shipment: Mapped[Shipment] = relationship("Shipment", back_populates="documents")

    __table_args__ = (
        Index("ix_documents_shipment_id", "shipment_id"),
        Index("ix_documents_document_type", "document_type"),
    )

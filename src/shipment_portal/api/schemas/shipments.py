"""Pydantic schemas for shipment endpoints.

Request bodies are deliberately permissive: every business field is optional
so the lifecycle service can report all missing or invalid fields together
with its own messages. Response bodies mirror the stored columns.
"""

from __future__ import annotations

# NOTE: date, datetime and UUID must remain at runtime for Pydantic validation
from datetime import date, datetime  # noqa: TC003
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

from shipment_portal.api.schemas.documents import DocumentResponse  # noqa: TC001
from shipment_portal.db.models.base import ShipmentStatus, TransportMode  # noqa: TC001

# -----------------------------------------------------------------------------
# Requests
# -----------------------------------------------------------------------------


class ShipmentFields(BaseModel):
    """Business fields accepted on create and update."""

    exporter_name: str | None = None
    exporter_address: str | None = None
    exporter_contact: str | None = None
    exporter_email: str | None = None
    vendor_name: str | None = None
    vendor_address: str | None = None
    vendor_contact: str | None = None
    vendor_email: str | None = None
    receiver_name: str | None = None
    receiver_address: str | None = None
    receiver_contact: str | None = None
    receiver_email: str | None = None

    item_description: str | None = None
    weight: float | str | None = None
    weight_unit: str | None = Field(None, max_length=10)
    dimensions_length: float | str | None = None
    dimensions_width: float | str | None = None
    dimensions_height: float | str | None = None
    dimensions_unit: str | None = Field(None, max_length=10)
    value: float | str | None = None
    currency: str | None = Field(None, max_length=3)

    pickup_date: date | str | None = None
    expected_delivery_date: date | str | None = None
    mode_of_transport: str | None = None

    invoice_no: str | None = None
    invoice_item_count: int | str | None = None
    customs_r_form: str | None = None
    bl_awb_no: str | None = None
    container_no: str | None = None
    container_type: str | None = None
    cbm: float | str | None = None
    gross_weight: float | str | None = None
    package_count: str | None = None
    cleared_date: date | str | None = None
    expense_macl: float | str | None = None
    expense_mpl: float | str | None = None
    expense_mcs: float | str | None = None
    expense_transportation: float | str | None = None
    expense_liner: float | str | None = None


class CreateShipmentRequest(ShipmentFields):
    model_config = ConfigDict(extra="ignore")


class UpdateShipmentRequest(ShipmentFields):
    """Partial update. Unknown keys are passed through so read-only fields are reported."""

    expected_version: int | None = Field(
        None, description="Version the client last saw; mismatches are rejected"
    )

    model_config = ConfigDict(extra="allow")


class RejectRequest(BaseModel):
    reason: str | None = None


class RequestChangesRequest(BaseModel):
    message: str | None = Field(None, max_length=5000)


# -----------------------------------------------------------------------------
# Responses
# -----------------------------------------------------------------------------


class ShipmentResponse(BaseModel):
    """A stored shipment."""

    model_config = ConfigDict(from_attributes=True)

    shipment_id: UUID
    shipment_code: str
    status: ShipmentStatus
    rejection_reason: str | None = None
    version: int

    exporter_name: str
    exporter_address: str
    exporter_contact: str | None = None
    exporter_email: str | None = None
    vendor_name: str
    vendor_address: str
    vendor_contact: str | None = None
    vendor_email: str | None = None
    receiver_name: str
    receiver_address: str
    receiver_contact: str | None = None
    receiver_email: str | None = None

    item_description: str
    weight: float
    weight_unit: str
    dimensions_length: float | None = None
    dimensions_width: float | None = None
    dimensions_height: float | None = None
    dimensions_unit: str
    value: float
    currency: str

    pickup_date: date
    expected_delivery_date: date
    mode_of_transport: TransportMode

    invoice_no: str | None = None
    invoice_item_count: int | None = None
    customs_r_form: str | None = None
    bl_awb_no: str | None = None
    container_no: str | None = None
    container_type: str | None = None
    cbm: float | None = None
    gross_weight: float | None = None
    package_count: str | None = None
    cleared_date: date | None = None
    expense_macl: float | None = None
    expense_mpl: float | None = None
    expense_mcs: float | None = None
    expense_transportation: float | None = None
    expense_liner: float | None = None

    created_by: UUID | None = None
    last_updated_by: UUID | None = None
    created_at: datetime
    updated_at: datetime


class ShipmentMessageResponse(BaseModel):
    """Result of a mutation: a confirmation message and the shipment."""

    message: str
    shipment: ShipmentResponse


class ShipmentDetailResponse(BaseModel):
    shipment: ShipmentResponse
    documents: list[DocumentResponse]


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    pages: int


class ShipmentListResponse(BaseModel):
    shipments: list[ShipmentResponse]
    pagination: Pagination


class StatusCounts(BaseModel):
    pending_approval: int
    approved: int
    rejected: int
    changes_requested: int
    in_transit: int
    delivered: int
    total: int


class DashboardResponse(BaseModel):
    """Per-status counts and the latest shipments."""

    model_config = ConfigDict(populate_by_name=True)

    statistics: StatusCounts
    recent_shipments: list[ShipmentResponse] = Field(..., serialization_alias="recentShipments")


class MessageResponse(BaseModel):
    message: str

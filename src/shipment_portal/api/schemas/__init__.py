"""Pydantic request and response schemas for the shipment portal API."""

from shipment_portal.api.schemas.audit import AuditLogListResponse, AuditLogResponse
from shipment_portal.api.schemas.auth import (
    CreatedUserResponse,
    LoginResponse,
    UserListResponse,
    UserResponse,
)
from shipment_portal.api.schemas.documents import DocumentListResponse, DocumentResponse
from shipment_portal.api.schemas.shipments import (
    DashboardResponse,
    ShipmentDetailResponse,
    ShipmentListResponse,
    ShipmentMessageResponse,
    ShipmentResponse,
)

__all__ = [
    "AuditLogListResponse",
    "AuditLogResponse",
    "CreatedUserResponse",
    "DashboardResponse",
    "DocumentListResponse",
    "DocumentResponse",
    "LoginResponse",
    "ShipmentDetailResponse",
    "ShipmentListResponse",
    "ShipmentMessageResponse",
    "ShipmentResponse",
    "UserListResponse",
    "UserResponse",
]

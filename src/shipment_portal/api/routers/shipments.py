"""Shipment API router.

Thin HTTP wiring over ShipmentLifecycleService. Role checks, state checks,
and visibility filtering all happen in the service; handlers only translate
between HTTP and service calls.
"""

from __future__ import annotations

import logging

# NOTE: date and UUID must remain at runtime for FastAPI parameter parsing
from datetime import date  # noqa: TC003
from typing import Annotated
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Body, Query, status

from shipment_portal.api.dependencies import CurrentActor, LifecycleService
from shipment_portal.api.schemas.documents import DocumentResponse
from shipment_portal.api.schemas.shipments import (
    CreateShipmentRequest,
    DashboardResponse,
    MessageResponse,
    Pagination,
    RejectRequest,
    RequestChangesRequest,
    ShipmentDetailResponse,
    ShipmentListResponse,
    ShipmentMessageResponse,
    ShipmentResponse,
    StatusCounts,
    UpdateShipmentRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/shipments",
    tags=["shipments"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Insufficient permissions"},
    },
)


@router.post(
    "",
    response_model=ShipmentMessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a shipment",
)
async def create_shipment(
    body: CreateShipmentRequest,
    actor: CurrentActor,
    service: LifecycleService,
) -> ShipmentMessageResponse:
    shipment = await service.create_shipment(actor, body.model_dump(exclude_unset=True))
    return ShipmentMessageResponse(
        message="Shipment created successfully",
        shipment=ShipmentResponse.model_validate(shipment),
    )


@router.get("", response_model=ShipmentListResponse, summary="List visible shipments")
async def list_shipments(
    actor: CurrentActor,
    service: LifecycleService,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    mode: Annotated[str | None, Query()] = None,
    search: Annotated[str | None, Query(max_length=200)] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> ShipmentListResponse:
    page = await service.list_shipments(
        actor,
        status=status_filter,
        mode=mode,
        search=search,
        limit=limit,
        offset=offset,
    )
    return ShipmentListResponse(
        shipments=[ShipmentResponse.model_validate(s) for s in page.items],
        pagination=Pagination(
            total=page.total, limit=page.limit, offset=page.offset, pages=page.pages
        ),
    )


@router.get(
    "/stats/dashboard",
    response_model=DashboardResponse,
    summary="Dashboard statistics",
    description="Per-status counts and the five latest shipments. Dates filter on pickup date.",
)
async def dashboard_statistics(
    actor: CurrentActor,
    service: LifecycleService,
    date_from: Annotated[date | None, Query(alias="dateFrom")] = None,
    date_to: Annotated[date | None, Query(alias="dateTo")] = None,
) -> DashboardResponse:
    stats = await service.get_statistics(actor, date_from=date_from, date_to=date_to)
    return DashboardResponse(
        statistics=StatusCounts(
            pending_approval=stats.pending_approval,
            approved=stats.approved,
            rejected=stats.rejected,
            changes_requested=stats.changes_requested,
            in_transit=stats.in_transit,
            delivered=stats.delivered,
            total=stats.total,
        ),
        recent_shipments=[ShipmentResponse.model_validate(s) for s in stats.recent],
    )


@router.get(
    "/{shipment_id}",
    response_model=ShipmentDetailResponse,
    summary="Get a shipment with its documents",
)
async def get_shipment(
    shipment_id: UUID,
    actor: CurrentActor,
    service: LifecycleService,
) -> ShipmentDetailResponse:
    shipment, documents = await service.get_shipment(actor, shipment_id)
    return ShipmentDetailResponse(
        shipment=ShipmentResponse.model_validate(shipment),
        documents=[DocumentResponse.model_validate(d) for d in documents],
    )


@router.put("/{shipment_id}", response_model=ShipmentMessageResponse, summary="Edit a shipment")
async def update_shipment(
    shipment_id: UUID,
    body: UpdateShipmentRequest,
    actor: CurrentActor,
    service: LifecycleService,
) -> ShipmentMessageResponse:
    changes = body.model_dump(exclude_unset=True)
    expected_version = changes.pop("expected_version", None)
    shipment = await service.update_shipment(
        actor, shipment_id, changes, expected_version=expected_version
    )
    return ShipmentMessageResponse(
        message="Shipment updated successfully",
        shipment=ShipmentResponse.model_validate(shipment),
    )


@router.delete("/{shipment_id}", response_model=MessageResponse, summary="Delete a shipment")
async def delete_shipment(
    shipment_id: UUID,
    actor: CurrentActor,
    service: LifecycleService,
) -> MessageResponse:
    await service.delete_shipment(actor, shipment_id)
    return MessageResponse(message="Shipment deleted successfully")


@router.post(
    "/{shipment_id}/approve",
    response_model=ShipmentMessageResponse,
    summary="Approve a shipment",
    description="Fails with `missingDocuments` when mandatory documents are absent.",
)
async def approve_shipment(
    shipment_id: UUID,
    actor: CurrentActor,
    service: LifecycleService,
) -> ShipmentMessageResponse:
    shipment = await service.approve(actor, shipment_id)
    return ShipmentMessageResponse(
        message="Shipment approved successfully",
        shipment=ShipmentResponse.model_validate(shipment),
    )


@router.post(
    "/{shipment_id}/reject", response_model=ShipmentMessageResponse, summary="Reject a shipment"
)
async def reject_shipment(
    shipment_id: UUID,
    actor: CurrentActor,
    service: LifecycleService,
    body: Annotated[RejectRequest | None, Body()] = None,
) -> ShipmentMessageResponse:
    reason = body.reason if body else None
    shipment = await service.reject(actor, shipment_id, reason)
    return ShipmentMessageResponse(
        message="Shipment rejected successfully",
        shipment=ShipmentResponse.model_validate(shipment),
    )


@router.post(
    "/{shipment_id}/request-changes",
    response_model=ShipmentMessageResponse,
    summary="Send a shipment back for changes",
)
async def request_changes(
    shipment_id: UUID,
    actor: CurrentActor,
    service: LifecycleService,
    body: Annotated[RequestChangesRequest | None, Body()] = None,
) -> ShipmentMessageResponse:
    message = body.message if body else None
    shipment = await service.request_changes(actor, shipment_id, message)
    return ShipmentMessageResponse(
        message="Change request sent successfully",
        shipment=ShipmentResponse.model_validate(shipment),
    )

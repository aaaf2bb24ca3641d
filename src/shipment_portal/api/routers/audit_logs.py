"""Audit log API router. Admin only."""

from __future__ import annotations

# NOTE: date must remain at runtime for FastAPI parameter parsing
from datetime import date  # noqa: TC003
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from shipment_portal.api.dependencies import AuditService
from shipment_portal.api.middleware.auth import AuthenticatedUser, require_capability
from shipment_portal.api.schemas.audit import AuditLogListResponse, AuditLogResponse
from shipment_portal.services.authz import Action

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get(
    "",
    response_model=AuditLogListResponse,
    summary="Query the audit trail",
    description="Newest first. `startDate` and `endDate` cover whole days.",
)
async def list_audit_logs(
    _auditor: Annotated[AuthenticatedUser, Depends(require_capability(Action.VIEW_AUDIT_LOGS))],
    audit: AuditService,
    action: Annotated[str | None, Query()] = None,
    entity_type: Annotated[str | None, Query(alias="entityType")] = None,
    start_date: Annotated[date | None, Query(alias="startDate")] = None,
    end_date: Annotated[date | None, Query(alias="endDate")] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> AuditLogListResponse:
    entries = await audit.query(
        action=action,
        entity_type=entity_type,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    return AuditLogListResponse(
        logs=[AuditLogResponse.model_validate(e) for e in entries],
        count=len(entries),
    )

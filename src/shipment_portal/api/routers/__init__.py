"""Shipment portal API routers.

All routers are mounted under /api:
- /auth: login, token refresh, password flows
- /users: account management (admin)
- /shipments: lifecycle and dashboard
- /documents: attachments
- /audit-logs: audit trail (admin)
"""

from shipment_portal.api.routers.audit_logs import router as audit_logs_router
from shipment_portal.api.routers.auth import router as auth_router
from shipment_portal.api.routers.documents import router as documents_router
from shipment_portal.api.routers.shipments import router as shipments_router
from shipment_portal.api.routers.users import router as users_router

__all__ = [
    "audit_logs_router",
    "auth_router",
    "documents_router",
    "shipments_router",
    "users_router",
]

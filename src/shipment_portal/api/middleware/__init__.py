"""Shipment portal API middleware.

This module provides middleware for:
- Request ID tracking and log correlation
- Consistent JSON error responses
- Bearer token authentication
"""

from shipment_portal.api.middleware.auth import (
    AuthenticatedUser,
    TokenAuthMiddleware,
    get_current_user,
    optional_authenticated_user,
    require_authenticated_user,
    require_capability,
)
from shipment_portal.api.middleware.errors import (
    ErrorHandlerMiddleware,
    register_exception_handlers,
)
from shipment_portal.api.middleware.request_id import (
    RequestIDLogFilter,
    RequestIDMiddleware,
    get_request_id,
)

__all__ = [
    "AuthenticatedUser",
    "ErrorHandlerMiddleware",
    "RequestIDLogFilter",
    "RequestIDMiddleware",
    "TokenAuthMiddleware",
    "get_current_user",
    "get_request_id",
    "optional_authenticated_user",
    "register_exception_handlers",
    "require_authenticated_user",
    "require_capability",
]

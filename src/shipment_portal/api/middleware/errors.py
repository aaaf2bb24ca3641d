"""Consistent JSON error responses.

Every error leaves the API as::

    {"error": "<human-readable message>", "code": "<machine-readable kind>",
     "request_id": "...", "details": [...], "missingDocuments": [...], ...}

Domain errors raised by services carry their own status code and extra
fields. FastAPI's own HTTP and request-validation errors are mapped to the
same shape by exception handlers registered on the app.
"""

from __future__ import annotations

import logging
import traceback
from typing import TYPE_CHECKING, Any

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from shipment_portal.api.middleware.request_id import get_request_id
from shipment_portal.services.errors import ShipmentPortalError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from fastapi import FastAPI
    from starlette.requests import Request
    from starlette.responses import Response

logger = logging.getLogger(__name__)

HTTP_STATUS_CODES: dict[int, str] = {
    400: "bad_request",
    401: "authentication_failed",
    403: "permission_denied",
    404: "not_found",
    405: "method_not_allowed",
    409: "duplicate",
    413: "payload_too_large",
    423: "account_locked",
}


def build_error_response(
    message: str,
    code: str,
    status_code: int,
    extra: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {"error": message, "code": code}

    request_id = get_request_id()
    if request_id:
        body["request_id"] = request_id

    if extra:
        body.update(extra)

    return JSONResponse(status_code=status_code, content=body, headers=headers)


def domain_error_response(exc: ShipmentPortalError) -> JSONResponse:
    return build_error_response(exc.message, exc.code, exc.status_code, exc.to_dict())


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch exceptions escaping the routers and render them as JSON.

    Args:
        debug: Include the traceback of unexpected errors in the body.
    """

    def __init__(self, app: Any, *, debug: bool = False) -> None:
        super().__init__(app)
        self._debug = debug

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        try:
            return await call_next(request)
        except ShipmentPortalError as exc:
            if exc.status_code >= 500:
                logger.error(
                    "Request failed: %s %s",
                    request.method,
                    request.url.path,
                    extra={"error": exc.message, "code": exc.code},
                )
            return domain_error_response(exc)
        except Exception as exc:
            logger.exception(
                "Unexpected error processing request: %s %s",
                request.method,
                request.url.path,
            )
            extra = None
            if self._debug:
                extra = {"details": traceback.format_exception(exc)}
            return build_error_response(
                "An internal error occurred",
                "internal_error",
                500,
                extra,
            )


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return build_error_response(
        str(exc.detail),
        HTTP_STATUS_CODES.get(exc.status_code, "http_error"),
        exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def _validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        details.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return build_error_response(
        "Invalid request",
        "validation_error",
        400,
        {"details": details},
    )


async def _domain_exception_handler(request: Request, exc: ShipmentPortalError) -> JSONResponse:
    return domain_error_response(exc)


def register_exception_handlers(app: FastAPI) -> None:
    """Map FastAPI's built-in errors and domain errors to the common shape."""
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(ShipmentPortalError, _domain_exception_handler)

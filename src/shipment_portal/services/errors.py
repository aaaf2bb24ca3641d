"""Domain error taxonomy.

Every service raises subclasses of ShipmentPortalError. Each carries the HTTP
status it maps to so the API error middleware can render it without a lookup
table, plus any machine-readable detail the caller needs to self-correct.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datetime import datetime


class ShipmentPortalError(Exception):
    """Base class for all domain errors.

    Attributes:
        message: Human-readable description, returned as ``error``.
        code: Machine-readable error kind.
        status_code: HTTP status the error maps to.
        details: Optional list of specific problems.
    """

    code = "error"
    status_code = 500

    def __init__(self, message: str, *, details: list[str] | None = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Extra response fields beyond ``error`` and ``code``."""
        extra: dict[str, Any] = {}
        if self.details:
            extra["details"] = self.details
        return extra


class ValidationError(ShipmentPortalError):
    """Bad or missing input, or an unmet precondition such as missing documents."""

    code = "validation_error"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        details: list[str] | None = None,
        missing_documents: list[str] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.missing_documents = missing_documents

    def to_dict(self) -> dict[str, Any]:
        extra = super().to_dict()
        if self.missing_documents is not None:
            extra["missingDocuments"] = self.missing_documents
        return extra


class PermissionDeniedError(ShipmentPortalError):
    """Wrong role, or not the owner of the resource."""

    code = "permission_denied"
    status_code = 403

    def __init__(self, message: str, *, action: str | None = None) -> None:
        super().__init__(message)
        self.action = action


class AuthenticationError(ShipmentPortalError):
    """Missing, invalid, or expired credentials."""

    code = "authentication_failed"
    status_code = 401


class NotFoundError(ShipmentPortalError):
    """The referenced entity does not exist or is not visible to the actor."""

    code = "not_found"
    status_code = 404

    def __init__(self, resource: str, identifier: Any = None) -> None:
        super().__init__(f"{resource} not found")
        self.resource = resource
        self.identifier = identifier


class ConflictError(ShipmentPortalError):
    """Illegal state transition, or the shipment changed concurrently."""

    code = "conflict"
    status_code = 400

    def __init__(self, message: str, *, current_status: str | None = None) -> None:
        super().__init__(message)
        self.current_status = current_status

    def to_dict(self) -> dict[str, Any]:
        extra = super().to_dict()
        if self.current_status is not None:
            extra["currentStatus"] = self.current_status
        return extra


class DuplicateError(ShipmentPortalError):
    """Unique value already taken (username, email)."""

    code = "duplicate"
    status_code = 409


class LockedError(ShipmentPortalError):
    """Account temporarily locked after repeated failed logins."""

    code = "account_locked"
    status_code = 423

    def __init__(self, message: str, *, locked_until: datetime | None = None) -> None:
        super().__init__(message)
        self.locked_until = locked_until

    def to_dict(self) -> dict[str, Any]:
        extra = super().to_dict()
        if self.locked_until is not None:
            extra["lockedUntil"] = self.locked_until.isoformat()
        return extra


class InternalError(ShipmentPortalError):
    """Unexpected collaborator failure."""

    code = "internal_error"
    status_code = 500

"""Bearer token authentication.

TokenAuthMiddleware decodes the access token on every request and places the
resulting AuthenticatedUser in a context variable. It never rejects a
request itself; route dependencies decide whether a user is required.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.middleware.base import BaseHTTPMiddleware

from shipment_portal.db.models.base import UserRole
from shipment_portal.services.authz import Action, Actor, require_allowed
from shipment_portal.services.errors import AuthenticationError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from uuid import UUID

    from starlette.responses import Response

    from shipment_portal.services.identity import TokenClaims, TokenService

logger = logging.getLogger(__name__)

current_user_ctx: ContextVar[AuthenticatedUser | None] = ContextVar("current_user", default=None)

bearer_scheme = HTTPBearer(auto_error=False)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True, slots=True)
class AuthenticatedUser:
    """The caller identified by a valid access token.

    Attributes:
        user_id: Account identifier (token subject).
        username: Login name.
        email: Contact address.
        role: Role claim, fixed for the lifetime of the token.
        ip_address: Client IP address.
        user_agent: Client user agent.
    """

    user_id: UUID
    username: str
    email: str
    role: UserRole
    ip_address: str | None = None
    user_agent: str | None = None

    @classmethod
    def from_claims(cls, claims: TokenClaims, request: Request) -> AuthenticatedUser:
        return cls(
            user_id=claims.user_id,
            username=claims.username,
            email=claims.email,
            role=claims.role,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )

    def to_actor(self) -> Actor:
        return Actor(
            user_id=self.user_id,
            role=self.role,
            username=self.username,
            email=self.email,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
        )


def get_current_user() -> AuthenticatedUser | None:
    return current_user_ctx.get()


class TokenAuthMiddleware(BaseHTTPMiddleware):
    """Resolve ``Authorization: Bearer <token>`` into the current user.

    The token service is read from ``app.state.token_service``. A token that
    fails verification leaves the user unset and records the reason on
    ``request.state.auth_error``.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request.state.user = None
        request.state.auth_error = None

        token = self._extract_token(request)
        user = None
        if token:
            tokens: TokenService = request.app.state.token_service
            try:
                claims = tokens.verify(token)
            except AuthenticationError as e:
                request.state.auth_error = e.message
                logger.debug("Rejected bearer token: %s", e.message)
            else:
                user = AuthenticatedUser.from_claims(claims, request)
                request.state.user = user

        ctx_token = current_user_ctx.set(user)
        try:
            return await call_next(request)
        finally:
            current_user_ctx.reset(ctx_token)

    @staticmethod
    def _extract_token(request: Request) -> str | None:
        header = request.headers.get("Authorization", "")
        if header.startswith(BEARER_PREFIX):
            return header[len(BEARER_PREFIX) :].strip() or None
        return None


# ---------------------------------------------------------------------------
# Route dependencies
# ---------------------------------------------------------------------------


async def optional_authenticated_user(request: Request) -> AuthenticatedUser | None:
    user = get_current_user()
    if user is None:
        user = getattr(request.state, "user", None)
    return user


async def require_authenticated_user(
    request: Request,
    _credentials: Annotated[
        HTTPAuthorizationCredentials | None,
        Depends(bearer_scheme),
    ] = None,
) -> AuthenticatedUser:
    """Dependency that requires a valid access token.

    ``_credentials`` only documents the bearer scheme in OpenAPI; the token is
    decoded by TokenAuthMiddleware.

    Raises:
        AuthenticationError: No token, or the token was invalid or expired.
    """
    user = await optional_authenticated_user(request)
    if user is not None:
        return user

    if getattr(request.state, "auth_error", None):
        raise AuthenticationError("Invalid or expired token")
    raise AuthenticationError("Authentication required")


def require_capability(action: Action) -> Callable[..., Awaitable[AuthenticatedUser]]:
    """Build a dependency that admits a user only if the authz table allows the action.

    Usage:
        Auditor = Annotated[AuthenticatedUser, Depends(require_capability(Action.VIEW_AUDIT_LOGS))]

        @router.get("/audit-logs")
        async def list_logs(user: Auditor): ...
    """

    async def _check_capability(
        user: Annotated[AuthenticatedUser, Depends(require_authenticated_user)],
    ) -> AuthenticatedUser:
        require_allowed(user.to_actor(), action)
        return user

    return _check_capability

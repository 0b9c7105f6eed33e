"""Per-request authorization gates.

Gates read the ``Authorization`` header and consult the RBAC engine; they
never mutate RBAC state or write audit entries. Failures raise the error
taxonomy and are rendered by the exception handlers with the generic
message only.

Usage:
    @router.get("/roles", dependencies=[Depends(require_role("admin", "super_admin"))])
    async def list_roles(): ...

    @router.post("/roles")
    async def create_role(identity: Identity = Depends(require_permission("system.configure_roles"))):
        ...
"""

from __future__ import annotations

from collections.abc import Iterable

from fastapi import Request

from shared.errors import AuthorizationError, InvalidCredentialError, MissingCredentialError
from shared.observability import get_logger, user_id_var
from shared.rbac import RBACEngine

from .verifier import Identity, TokenVerifier

logger = get_logger(__name__)


def extract_bearer(authorization: str | None) -> str:
    """Return the token of a ``Bearer`` authorization header."""
    if not authorization or not authorization.strip():
        raise MissingCredentialError()

    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise InvalidCredentialError(scheme=scheme.lower())
    return token


class AuthGate:
    """Authentication and authorization checks for one service."""

    def __init__(self, verifier: TokenVerifier, engine: RBACEngine):
        self.verifier = verifier
        self.engine = engine

    async def authenticate(self, authorization: str | None) -> Identity:
        return await self.verifier.verify(extract_bearer(authorization))

    async def require_auth(self, request: Request) -> Identity:
        """Authenticate the request; 401 on failure."""
        identity = getattr(request.state, "identity", None)
        if identity is None:
            identity = await self.authenticate(request.headers.get("authorization"))
            request.state.identity = identity
            user_id_var.set(str(identity.user_id))
        return identity

    async def require_role(self, request: Request, roles: Iterable[str]) -> Identity:
        """Authenticate, then require one of ``roles``; 403 on failure."""
        roles = list(roles)
        identity = await self.require_auth(request)
        if not await self.engine.has_any_role(identity.user_id, roles):
            raise AuthorizationError(user_id=identity.user_id, required_roles=roles)
        return identity

    async def require_permission(
        self,
        request: Request,
        permission_name: str,
        resource: str | None = None,
    ) -> Identity:
        """Authenticate, then require a fine-grained permission; 403 on failure."""
        identity = await self.require_auth(request)
        if not await self.engine.has_permission(identity.user_id, permission_name, resource):
            raise AuthorizationError(
                user_id=identity.user_id,
                required_permission=permission_name,
                resource=resource,
            )
        return identity


def get_auth_gate(request: Request) -> AuthGate:
    return request.app.state.auth_gate


# =============================================================================
# FastAPI dependency factories
# =============================================================================


def require_auth():
    """Dependency factory for any authenticated caller."""

    async def dependency(request: Request) -> Identity:
        return await get_auth_gate(request).require_auth(request)

    return dependency


def require_role(*roles: str):
    """Dependency factory for holders of any of ``roles``."""

    async def dependency(request: Request) -> Identity:
        return await get_auth_gate(request).require_role(request, roles)

    return dependency


def require_permission(permission_name: str, resource: str | None = None):
    """Dependency factory for holders of a permission."""

    async def dependency(request: Request) -> Identity:
        return await get_auth_gate(request).require_permission(
            request, permission_name, resource
        )

    return dependency

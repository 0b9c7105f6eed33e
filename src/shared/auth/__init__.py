"""Authentication layer: token verification and request gates."""

from .middleware import (
    AuthGate,
    extract_bearer,
    get_auth_gate,
    require_auth,
    require_permission,
    require_role,
)
from .verifier import Identity, TokenPayload, TokenVerifier

__all__ = [
    # Verifier
    "Identity",
    "TokenPayload",
    "TokenVerifier",
    # Gates
    "AuthGate",
    "extract_bearer",
    "get_auth_gate",
    "require_auth",
    "require_role",
    "require_permission",
]

"""Shared router dependencies."""

from __future__ import annotations

from fastapi import Request

from shared.auth import require_role
from shared.config import get_settings
from shared.rbac import RBACEngine


def get_engine(request: Request) -> RBACEngine:
    """Dependency to get the RBAC engine."""
    return request.app.state.rbac_engine


# Read access to the administration endpoints
require_admin = require_role(*get_settings().rbac.admin_roles)

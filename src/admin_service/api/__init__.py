"""API routers for the Admin service."""

from . import audit, health, roles, users

__all__ = ["audit", "health", "roles", "users"]

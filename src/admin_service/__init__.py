"""Admin service: RBAC administration endpoints and the session bootstrap endpoint."""

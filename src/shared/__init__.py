"""Healthcare Platform Shared Package.

This package contains shared components used across all microservices:
- config: Configuration management
- observability: Structured logging
- redis_client: Redis client wrapper
- database: SQLAlchemy ORM models
- models: Pydantic data models
- rbac: Dynamic role-based access control engine
- auth: Token verification and per-request authorization gates
"""

__version__ = "0.1.0"

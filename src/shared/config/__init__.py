"""Configuration management module.

This module provides:
- Environment-based configuration with validation
- Service-specific settings classes
- Cached settings access via get_settings()
"""

from .settings import (
    AdminServiceSettings,
    APIGatewaySettings,
    CacheBackend,
    DatabaseSettings,
    Environment,
    GatewaySettings,
    JWTSettings,
    LogFormat,
    LogLevel,
    RBACSettings,
    RedisSettings,
    ServiceURLSettings,
    Settings,
    get_settings,
)

__all__ = [
    # Main settings
    "Settings",
    "get_settings",
    # Enums
    "Environment",
    "LogLevel",
    "LogFormat",
    "CacheBackend",
    # Component settings
    "DatabaseSettings",
    "RedisSettings",
    "ServiceURLSettings",
    "JWTSettings",
    "RBACSettings",
    "GatewaySettings",
    # Service-specific settings
    "APIGatewaySettings",
    "AdminServiceSettings",
]

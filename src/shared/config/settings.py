"""Configuration management with Pydantic Settings.

Environment variables are loaded from:
1. Environment variables (highest priority)
2. .env file (development)
3. Defaults (lowest priority)
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Logging format."""

    JSON = "json"
    TEXT = "text"


class CacheBackend(str, Enum):
    """Permission cache backend."""

    LOCAL = "local"  # per-process, paired with a TTL backstop and pub/sub invalidation
    REDIS = "redis"  # shared across all workers


class DatabaseSettings(BaseSettings):
    """PostgreSQL database configuration."""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    user: str = Field(default="healthcare", description="Database user")
    password: str = Field(default="", description="Database password")
    database: str = Field(default="healthcare", description="Database name")
    dsn: str | None = Field(
        default=None,
        description="Full async database URL, overrides the individual fields",
    )

    @property
    def async_url(self) -> str:
        """Build async database URL (asyncpg driver)."""
        if self.dsn:
            return self.dsn
        return f"postgresql+asyncpg://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


class RedisSettings(BaseSettings):
    """Redis configuration."""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: str | None = Field(default=None, description="Redis password")

    @property
    def url(self) -> str:
        """Build Redis URL."""
        if self.password:
            return f"redis://:{self.password}@{self.host}:{self.port}"
        return f"redis://{self.host}:{self.port}"


class ServiceURLSettings(BaseSettings):
    """Upstream service origins used by the gateway route table."""

    model_config = SettingsConfigDict(env_prefix="SERVICE_")

    user_service_url: str = Field(
        default="http://user-service:8001",
        description="User service origin",
    )
    appointment_service_url: str = Field(
        default="http://appointment-service:8002",
        description="Appointment service origin",
    )
    clinical_service_url: str = Field(
        default="http://clinical-service:8003",
        description="Clinical service origin",
    )
    notification_service_url: str = Field(
        default="http://notification-service:8004",
        description="Notification service origin",
    )
    billing_service_url: str = Field(
        default="http://billing-service:8005",
        description="Billing service origin",
    )
    storage_service_url: str = Field(
        default="http://storage-service:8006",
        description="Storage service origin",
    )
    admin_service_url: str = Field(
        default="http://admin-service:8007",
        description="Admin (RBAC) service origin",
    )


class JWTSettings(BaseSettings):
    """Bearer credential configuration."""

    model_config = SettingsConfigDict(env_prefix="JWT_")

    secret_key: str = Field(
        default="change-me-in-production",
        description="Shared signing secret",
    )
    algorithm: str = Field(default="HS256", description="Signing algorithm")
    issuer: str = Field(default="healthcare-app", description="Expected iss claim")
    access_token_expire_minutes: int = Field(
        default=24 * 60,
        description="Lifetime of issued credentials",
    )


class RBACSettings(BaseSettings):
    """RBAC engine, permission cache and patient-access policy configuration."""

    model_config = SettingsConfigDict(env_prefix="RBAC_")

    cache_backend: CacheBackend = Field(
        default=CacheBackend.LOCAL,
        description="Permission cache backend",
    )
    cache_ttl_seconds: int = Field(
        default=30,
        description="Backstop TTL for cached permission checks",
    )
    cache_max_users: int = Field(
        default=10_000,
        description="Maximum users held by the local permission cache",
    )
    invalidation_channel: str = Field(
        default="rbac:invalidations",
        description="Redis pub/sub channel for cross-worker cache invalidation",
    )

    # Patient-access policy
    full_access_roles: list[str] = Field(default_factory=lambda: ["super_admin"])
    clinical_roles: list[str] = Field(default_factory=lambda: ["doctor"])
    front_desk_roles: list[str] = Field(default_factory=lambda: ["receptionist"])
    front_desk_permission: str = Field(default="patients.basic_read")

    # Roles allowed to read the RBAC administration endpoints
    admin_roles: list[str] = Field(default_factory=lambda: ["admin", "super_admin"])

    @field_validator("cache_ttl_seconds")
    @classmethod
    def validate_cache_ttl(cls, v: int) -> int:
        """Keep the TTL backstop short and strictly positive."""
        if v < 1 or v > 300:
            raise ValueError("cache_ttl_seconds must be between 1 and 300")
        return v


class GatewaySettings(BaseSettings):
    """Gateway upstream call configuration."""

    model_config = SettingsConfigDict(env_prefix="GATEWAY_")

    upstream_timeout_seconds: float = Field(
        default=30.0,
        description="Total timeout for one upstream call",
    )
    upstream_connect_timeout_seconds: float = Field(
        default=5.0,
        description="Connect timeout for one upstream call",
    )
    retry_idempotent: bool = Field(
        default=True,
        description="Retry GET requests once on upstream failure",
    )


class Settings(BaseSettings):
    """Main application settings.

    All settings can be overridden via environment variables.
    For nested settings, use the appropriate prefix (e.g., POSTGRES_HOST, RBAC_CACHE_BACKEND).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="healthcare-platform", description="Application name")
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        alias="ENV",
        description="Deployment environment",
    )

    # Logging configuration
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: LogFormat = Field(default=LogFormat.JSON, description="Logging format")

    # Runtime
    workers: int = Field(default=1, description="Number of worker processes")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Nested settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    services: ServiceURLSettings = Field(default_factory=ServiceURLSettings)
    jwt: JWTSettings = Field(default_factory=JWTSettings)
    rbac: RBACSettings = Field(default_factory=RBACSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)

    @field_validator("workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensure workers is at least 1."""
        return max(1, v)

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses LRU cache to avoid re-parsing environment variables.
    """
    return Settings()


# Service-specific settings classes for fine-grained control


class APIGatewaySettings(Settings):
    """Settings specific to the API Gateway service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    cors_allowed_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="CORS allowed origins",
    )


class AdminServiceSettings(Settings):
    """Settings specific to the Admin (RBAC) service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    seed_on_startup: bool = Field(
        default=True,
        description="Seed the role/permission vocabulary at start-up",
    )
    bootstrap_super_admin_id: int | None = Field(
        default=None,
        description="User granted super_admin at seeding when the role has no holder",
    )
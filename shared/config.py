"""
Shared configuration management for the Device Registry service.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="REGISTRY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Storage: "memory://" or a postgres DSN
    storage_dsn: str = Field(default="memory://")
    storage_pool_min_size: int = Field(default=2)
    storage_pool_max_size: int = Field(default=10)

    # Token authority
    auth_service_url: str = Field(default="http://localhost:8010")
    token_sign_timeout: float = Field(default=5.0, gt=0)

    # Password hashing
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)

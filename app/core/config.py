# python
# app/core/config.py
"""Configuration settings for the chat persistence service.

Uses Pydantic BaseSettings for environment variable management.
"""
from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentEnum(str, Enum):
    development = "development"
    testing = "testing"
    staging = "staging"
    production = "production"


class LogLevelEnum(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormatEnum(str, Enum):
    simple = "simple"
    json = "json"


class KeyValueBackendEnum(str, Enum):
    redis = "redis"
    memory = "memory"


class ObjectBackendEnum(str, Enum):
    s3 = "s3"
    local = "local"


class Settings(BaseSettings):
    # Pydantic v2 settings configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===== Application Settings =====
    app_name: str = Field(default="Chat Persistence API", description="Application name")
    environment: EnvironmentEnum = Field(
        default=EnvironmentEnum.development, description="Environment type"
    )
    debug: bool = Field(default=False, description="Debug mode")
    version: str = Field(default="1.0.0", description="Application version")

    # ===== Relational Store =====
    database_url: str | None = Field(default=None, description="Database connection URL")

    # ===== Key-Value Store =====
    kv_backend: KeyValueBackendEnum = Field(
        default=KeyValueBackendEnum.memory, description="Key-value backend"
    )
    redis_url: str | None = Field(default=None, description="Redis connection URL")
    kv_prefix: str = Field(default="", description="Prefix applied to every key-value key")
    session_ttl_seconds: int = Field(default=3600, description="Default session TTL")
    cache_ttl_seconds: int = Field(default=300, description="Default cache entry TTL")

    # ===== Object Store =====
    object_backend: ObjectBackendEnum = Field(
        default=ObjectBackendEnum.local, description="Object storage backend"
    )
    local_storage_dir: str = Field(
        default="./storage/objects", description="Blob directory for the local backend"
    )
    s3_bucket_name: str | None = Field(default=None, description="S3 bucket name")
    s3_region: str | None = Field(default=None, description="S3 region")
    s3_endpoint_url: str | None = Field(default=None, description="S3 endpoint URL")
    object_prefix: str = Field(default="", description="Prefix applied to every object key")

    # ===== Application Limits =====
    max_file_size: int = Field(default=52428800, description="Maximum file size in bytes (50MB)")
    default_user_id: str = Field(
        default="default", description="Placeholder user for credential storage"
    )

    # ===== CORS Settings =====
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000",
        description="Allowed CORS origins (comma-separated)",
    )

    @property
    def allowed_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    # ===== Monitoring & Logging =====
    log_level: LogLevelEnum = Field(default=LogLevelEnum.INFO, description="Logging level")
    log_format: LogFormatEnum = Field(default=LogFormatEnum.simple, description="Log format")

    # ===== Server Settings =====
    host: str = Field(default="127.0.0.1", description="Host to bind the server")
    port: int = Field(default=8000, description="Port to bind the server")

    # ===== Computed Properties =====
    @property
    def is_development(self) -> bool:
        return self.environment == EnvironmentEnum.development

    @property
    def is_production(self) -> bool:
        return self.environment == EnvironmentEnum.production

    @property
    def is_testing(self) -> bool:
        return self.environment == EnvironmentEnum.testing

    @property
    def storage_configured(self) -> bool:
        return bool(self.database_url and self.database_url.strip())

    # ===== Validation Methods =====
    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v):
        if v and isinstance(v, str):
            lv = v.lower()
            if lv in ["dev", "develop"]:
                return "development"
            if lv in ["prod"]:
                return "production"
            return lv
        return v

    @field_validator("max_file_size")
    @classmethod
    def validate_file_size(cls, v):
        if v > 100 * 1024 * 1024:
            raise ValueError("Maximum file size cannot exceed 100MB")
        return v

    @field_validator("session_ttl_seconds", "cache_ttl_seconds")
    @classmethod
    def validate_ttl(cls, v):
        if v < 1:
            raise ValueError("TTL must be at least one second")
        return v


settings = Settings()


def get_config_summary(current: Settings | None = None) -> dict:
    current = current or settings
    return {
        "app_name": current.app_name,
        "version": current.version,
        "environment": current.environment,
        "debug": current.debug,
        "storage_configured": current.storage_configured,
        "kv_backend": current.kv_backend,
        "object_backend": current.object_backend,
    }


__all__ = [
    "settings",
    "Settings",
    "get_config_summary",
    "EnvironmentEnum",
    "LogLevelEnum",
    "LogFormatEnum",
    "KeyValueBackendEnum",
    "ObjectBackendEnum",
]

"""
User Service Application Configuration

Settings for the store of record, the Redis cache, the cached user store
and the HTTP server, read from the environment and an optional .env file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import Optional
from functools import lru_cache
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """User Service settings. Only DATABASE_URL is required."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Environment settings
    ENVIRONMENT: str = Field(
        default="development", description="Application environment"
    )
    SERVICE_NAME: str = Field(
        default="user-service", description="Service name used in logs"
    )

    # Authoritative store configuration
    DATABASE_URL: str = Field(
        ...,
        description="Database connection URL with asyncpg or aiosqlite driver",
    )
    DATABASE_POOL_SIZE: int = Field(
        default=10, ge=1, le=100, description="Database connection pool size"
    )
    DATABASE_MAX_OVERFLOW: int = Field(
        default=20, ge=0, le=100, description="Maximum overflow connections"
    )
    DATABASE_POOL_TIMEOUT: int = Field(
        default=30, ge=1, le=300, description="Connection pool timeout in seconds"
    )
    DATABASE_POOL_RECYCLE: int = Field(
        default=3600, ge=300, le=86400, description="Connection recycle time in seconds"
    )
    DATABASE_CREATE_TABLES: bool = Field(
        default=True, description="Create missing tables at startup"
    )

    # Redis configuration
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0", description="Redis connection URL"
    )
    REDIS_MAX_CONNECTIONS: int = Field(
        default=10, ge=1, le=50, description="Redis connection pool size"
    )
    REDIS_CONNECTION_TIMEOUT: float = Field(
        default=5.0, gt=0, le=60, description="Redis connect timeout in seconds"
    )
    REDIS_OPERATION_TIMEOUT: float = Field(
        default=5.0, gt=0, le=60, description="Redis command timeout in seconds"
    )
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(
        default=30, ge=0, le=300, description="Idle connection health check interval"
    )

    # Circuit breaker settings
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = Field(
        default=5, ge=1, le=20, description="Circuit breaker failure threshold"
    )
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Circuit breaker recovery timeout in seconds",
    )

    # Cache behaviour
    CACHE_KEY_PREFIX: str = Field(
        default="users", min_length=1, description="Redis key prefix for users"
    )
    CACHE_ENTRY_TTL_SECONDS: Optional[int] = Field(
        default=None, ge=1, description="Cache entry TTL, no expiry when unset"
    )
    CACHE_BACKFILL_ON_MISS: bool = Field(
        default=False, description="Populate the cache from read misses"
    )
    CACHE_MIRROR_MAX_ATTEMPTS: int = Field(
        default=3, ge=1, le=10, description="Attempts per cache write-through"
    )
    CACHE_MIRROR_RETRY_DELAY: float = Field(
        default=0.1, ge=0, le=10, description="Base backoff for cache write retries"
    )

    # Startup data
    SEED_TEST_DATA: bool = Field(
        default=False, description="Replace all users with test data at startup"
    )

    # API configuration
    API_HOST: str = Field(default="0.0.0.0", description="API server host")
    API_PORT: int = Field(default=8000, ge=1, le=65535, description="API server port")
    API_RELOAD: bool = Field(
        default=False, description="Enable auto-reload in development"
    )

    # Development and debugging
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_JSON: bool = Field(default=False, description="Render logs as JSON")

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v):
        """Validate database URL format and force an async driver."""
        if v.startswith("postgresql://"):
            return "postgresql+asyncpg://" + v[len("postgresql://") :]
        if not v.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError(
                "DATABASE_URL must be a postgresql+asyncpg or sqlite+aiosqlite URL"
            )
        return v

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment value."""
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of: {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return v.upper()

    @field_validator("CACHE_KEY_PREFIX")
    @classmethod
    def validate_cache_key_prefix(cls, v):
        """Validate cache key prefix."""
        if any(char.isspace() for char in v):
            raise ValueError("CACHE_KEY_PREFIX cannot contain whitespace")
        return v

    @property
    def is_sqlite(self) -> bool:
        """Check if the store of record is SQLite."""
        return self.DATABASE_URL.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

"""Application configuration."""

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="null",
    )

    # Application
    app_name: str = Field(default="Clinic Booking API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # Database
    database_url: str = Field(..., alias="DATABASE_URL")
    db_pool_size: int = Field(default=10, alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=20, alias="DB_MAX_OVERFLOW")

    # Redis (optional: doctor cache and distributed booking lock)
    redis_url: str | None = Field(default=None, alias="REDIS_URL")

    # Clinic working hours, evaluated on UTC instants
    clinic_open_hour: int = Field(default=9, ge=0, le=23, alias="CLINIC_OPEN_HOUR")
    clinic_close_hour: int = Field(default=17, ge=1, le=24, alias="CLINIC_CLOSE_HOUR")
    default_slot_minutes: int = Field(default=30, ge=1, le=1440, alias="DEFAULT_SLOT_MINUTES")

    # Booking transaction
    booking_max_attempts: int = Field(default=3, ge=1, alias="BOOKING_MAX_ATTEMPTS")
    booking_retry_backoff_seconds: float = Field(
        default=0.05, ge=0, alias="BOOKING_RETRY_BACKOFF_SECONDS"
    )
    booking_retry_max_backoff_seconds: float = Field(
        default=1.0, ge=0, alias="BOOKING_RETRY_MAX_BACKOFF_SECONDS"
    )

    # Fallback lock around check-and-insert: none | local | redis
    booking_lock_backend: str = Field(default="none", alias="BOOKING_LOCK_BACKEND")
    booking_lock_ttl_seconds: int = Field(default=30, ge=1, alias="BOOKING_LOCK_TTL_SECONDS")
    booking_lock_wait_seconds: float = Field(default=2.0, ge=0, alias="BOOKING_LOCK_WAIT_SECONDS")

    # CORS
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as a list."""
        if isinstance(self.cors_origins_str, str):
            return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]
        return [self.cors_origins_str]

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    @model_validator(mode="after")
    def validate_clinic_hours(self) -> "Settings":
        """Ensure the working-hours window is non-empty and the lock backend is known."""
        if self.clinic_open_hour >= self.clinic_close_hour:
            raise ValueError("CLINIC_OPEN_HOUR must be earlier than CLINIC_CLOSE_HOUR")
        if self.booking_lock_backend not in {"none", "local", "redis"}:
            raise ValueError("BOOKING_LOCK_BACKEND must be one of: none, local, redis")
        if self.booking_lock_backend == "redis" and not self.redis_url:
            raise ValueError("BOOKING_LOCK_BACKEND=redis requires REDIS_URL")
        return self

    @property
    def async_database_url(self) -> str:
        """Database URL with an async driver."""
        if self.database_url.startswith("postgresql://"):
            return self.database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if self.database_url.startswith("sqlite://"):
            return self.database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return self.database_url

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()  # type: ignore[call-arg]


# Global settings instance
settings = get_settings()

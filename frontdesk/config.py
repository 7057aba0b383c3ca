"""Application configuration."""

from functools import lru_cache

from pydantic import Field
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
    app_name: str = Field(default="Front Desk Queue API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # Appointment service (system of record)
    appointment_service_url: str = Field(
        default="http://localhost:8081",
        alias="APPOINTMENT_SERVICE_URL",
        description="Base URL of the collaborator appointment service",
    )
    appointment_service_timeout: float = Field(
        default=10.0,
        gt=0,
        alias="APPOINTMENT_SERVICE_TIMEOUT",
    )

    # Queue
    queue_refresh_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        alias="QUEUE_REFRESH_INTERVAL_SECONDS",
    )
    preference_lookup_concurrency: int = Field(
        default=8,
        ge=1,
        alias="PREFERENCE_LOOKUP_CONCURRENCY",
    )
    # Preferences are advisory, a couple of minutes of staleness is fine
    preference_cache_ttl: int = Field(default=120, ge=0, alias="PREFERENCE_CACHE_TTL")
    verify_doctor_availability: bool = Field(default=True, alias="VERIFY_DOCTOR_AVAILABILITY")
    session_idle_timeout_seconds: float = Field(
        default=900.0,
        gt=0,
        alias="SESSION_IDLE_TIMEOUT_SECONDS",
    )

    # Redis
    redis_enabled: bool = Field(default=False, alias="REDIS_ENABLED")
    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_username: str = Field(default="default", alias="REDIS_USERNAME")
    redis_password: str = Field(default="", alias="REDIS_PASSWORD")
    redis_decode_responses: bool = Field(default=True, alias="REDIS_DECODE_RESPONSES")

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


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()

"""
Application configuration using Pydantic Settings.

Loads configuration from environment variables with validation,
type coercion, and sensible defaults.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class IGDBConfig(BaseSettings):
    """IGDB metadata provider configuration."""

    model_config = SettingsConfigDict(env_prefix="IGDB_")

    client_id: str = Field(
        default=...,
        description="Twitch application client ID used for IGDB access",
    )
    client_secret: SecretStr = Field(
        default=...,
        description="Twitch application client secret",
    )
    base_url: str = Field(
        default="https://api.igdb.com/v4",
        description="Base URL for IGDB API",
    )
    token_url: str = Field(
        default="https://id.twitch.tv/oauth2/token",
        description="Twitch OAuth endpoint for client-credentials tokens",
    )
    image_base_url: str = Field(
        default="https://images.igdb.com/igdb/image/upload",
        description="Base URL for IGDB image assets",
    )
    cover_size: str = Field(
        default="t_cover_big",
        description="IGDB image size token used for artwork URLs",
    )
    requests_per_minute: int = Field(
        default=240,
        ge=1,
        le=240,
        description="Rate limit for API requests per minute (IGDB allows 4/s)",
    )
    timeout_seconds: int = Field(
        default=30,
        ge=5,
        le=120,
        description="HTTP request timeout in seconds",
    )
    token_refresh_buffer_seconds: int = Field(
        default=300,
        ge=0,
        description="Refresh the access token this long before it expires",
    )
    lookup_ttl_seconds: int = Field(
        default=30 * 24 * 60 * 60,
        ge=60,
        description="Lifetime of cached genre/platform/game-mode lookup tables",
    )
    lookup_batch_size: int = Field(
        default=500,
        ge=1,
        le=500,
        description="Items per request when fetching lookup tables",
    )


class RetryConfig(BaseSettings):
    """Retry behavior configuration."""

    model_config = SettingsConfigDict(env_prefix="RETRY_")

    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum number of retry attempts",
    )
    base_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=30.0,
        description="Base delay between retries (exponential backoff)",
    )
    max_delay_seconds: float = Field(
        default=60.0,
        ge=0.0,
        le=300.0,
        description="Maximum delay between retries",
    )
    exponential_base: float = Field(
        default=2.0,
        ge=1.5,
        le=4.0,
        description="Base for exponential backoff calculation",
    )


class EnrichmentConfig(BaseSettings):
    """Metadata enrichment scheduling configuration."""

    model_config = SettingsConfigDict(env_prefix="ENRICHMENT_")

    enabled: bool = Field(
        default=True,
        description="Whether background enrichment runs are allowed",
    )
    batch_size: int = Field(
        default=10,
        ge=1,
        le=500,
        description="Games selected per enrichment batch",
    )
    request_delay_seconds: float = Field(
        default=0.2,
        ge=0.0,
        le=60.0,
        description="Pause between two games inside a batch",
    )
    delay_between_batches_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=600.0,
        description="Pause between consecutive batches of one run",
    )
    search_candidate_limit: int = Field(
        default=1,
        ge=1,
        le=50,
        description="Candidates requested from the provider name search",
    )
    max_batches_per_run: int = Field(
        default=50,
        ge=1,
        description="Upper bound on batches processed by a single run",
    )


class SearchConfig(BaseSettings):
    """Catalog search configuration."""

    model_config = SettingsConfigDict(env_prefix="SEARCH_")

    default_limit: int = Field(default=20, ge=1, description="Default page size")
    max_limit: int = Field(default=100, ge=1, description="Largest page size allowed")
    min_query_length: int = Field(default=1, ge=1)
    max_query_length: int = Field(default=100, ge=1)

    @field_validator("max_limit")
    @classmethod
    def validate_max_limit(cls, v: int) -> int:
        """Keep the page size cap within what a single query should return."""
        if v > 500:
            raise ValueError(f"max_limit too large: {v}")
        return v


class DatabaseConfig(BaseSettings):
    """Catalog storage configuration."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    url: str = Field(
        default="sqlite:///gsplay_catalog.db",
        description="SQLAlchemy database URL",
    )
    echo: bool = Field(default=False, description="Echo SQL statements")
    pool_recycle_seconds: int = Field(default=1800, ge=30)


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    format: Literal["json", "console"] = Field(
        default="json",
        description="Log output format",
    )
    include_timestamp: bool = Field(
        default=True,
        description="Include timestamp in log entries",
    )


class Settings(BaseSettings):
    """
    Main application settings.

    Aggregates all configuration sections and provides
    a single entry point for configuration access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )

    # Sub-configurations
    igdb: IGDBConfig = Field(default_factory=IGDBConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once
    and reused across the application.

    Returns:
        Settings: Application configuration instance
    """
    return Settings()

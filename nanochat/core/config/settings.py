"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
generation backend. All configuration is centralized here to ensure
consistency across modules.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Easy testing with override mechanisms (reload_settings)
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GatewaySettings(BaseSettings):
    """
    Inference gateway (NanoGPT) configuration.

    The gateway serves the OpenAI-compatible completion API as well as the
    catalog, web search, scrape, memory and media endpoints.
    """

    NANOGPT_API_KEY: str | None = Field(default=None, description="Global fallback API key")
    NANOGPT_BASE_URL: str = Field(default="https://nano-gpt.com", description="Gateway origin")
    NANOGPT_API_PATH: str = Field(default="/api/v1", description="OpenAI-compatible API path")
    GATEWAY_TIMEOUT: float = Field(default=60.0, description="HTTP timeout for gateway calls")
    CATALOG_CACHE_TTL: int = Field(default=300, description="Model catalog cache TTL (seconds)")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)

    @property
    def completions_base_url(self) -> str:
        return self.NANOGPT_BASE_URL.rstrip("/") + self.NANOGPT_API_PATH


class GenerationSettings(BaseSettings):
    """
    Orchestration tunables.

    Media jobs are polled at a fixed interval for a bounded number of attempts
    (5s x 120 = 10 minutes by default).
    """

    TITLE_MODEL_ID: str = Field(default="zai-org/GLM-4.5-Air", description="Model used for titles")
    FOLLOW_UP_MODEL_ID: str = Field(default="zai-org/GLM-4.5-Air", description="Default follow-up model")
    MEDIA_POLL_INTERVAL_SECONDS: float = Field(default=5.0, description="Media status poll interval")
    MEDIA_POLL_MAX_ATTEMPTS: int = Field(default=120, description="Maximum media status polls")
    IMAGE_SIZE: str = Field(default="1024x1024", description="Generated image size")
    UPLOAD_DIR: str = Field(default="data/uploads", description="Directory for generated media")
    RECONCILE_ORPHANED_GENERATIONS: bool = Field(
        default=False, description="Clear generating flags left over from a crash at startup"
    )
    USE_FAKE_LLM: bool = Field(default=False, description="Serve completions from the fake provider")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    Architectural Decision: structlog for production-grade logging
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """General application settings."""

    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="NanoChat Generation Backend", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")
    API_BASE_PATH: str = Field(default="/api", description="Prefix for all API routes")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    Usage:
        from nanochat.core.config.settings import get_settings

        settings = get_settings()
        base_url = settings.gateway.completions_base_url
        interval = settings.generation.MEDIA_POLL_INTERVAL_SECONDS
    """

    # Gateway settings
    NANOGPT_API_KEY: str | None = Field(default=None, description="Global fallback API key")
    NANOGPT_BASE_URL: str = Field(default="https://nano-gpt.com", description="Gateway origin")
    NANOGPT_API_PATH: str = Field(default="/api/v1", description="OpenAI-compatible API path")
    GATEWAY_TIMEOUT: float = Field(default=60.0, description="HTTP timeout for gateway calls")
    CATALOG_CACHE_TTL: int = Field(default=300, description="Model catalog cache TTL (seconds)")

    # Generation settings
    TITLE_MODEL_ID: str = Field(default="zai-org/GLM-4.5-Air", description="Model used for titles")
    FOLLOW_UP_MODEL_ID: str = Field(default="zai-org/GLM-4.5-Air", description="Default follow-up model")
    MEDIA_POLL_INTERVAL_SECONDS: float = Field(default=5.0, description="Media status poll interval")
    MEDIA_POLL_MAX_ATTEMPTS: int = Field(default=120, description="Maximum media status polls")
    IMAGE_SIZE: str = Field(default="1024x1024", description="Generated image size")
    UPLOAD_DIR: str = Field(default="data/uploads", description="Directory for generated media")
    RECONCILE_ORPHANED_GENERATIONS: bool = Field(
        default=False, description="Clear generating flags left over from a crash at startup"
    )
    USE_FAKE_LLM: bool = Field(default=False, description="Serve completions from the fake provider")

    # Execution tracking
    EXECUTION_TRACKING_ENABLED: bool = Field(default=True, description="Enable stage timing")

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="NanoChat Generation Backend", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")
    API_BASE_PATH: str = Field(default="/api", description="Prefix for all API routes")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    # Nested configuration views
    @property
    def gateway(self) -> GatewaySettings:
        """Get gateway settings."""
        return GatewaySettings(
            NANOGPT_API_KEY=self.NANOGPT_API_KEY,
            NANOGPT_BASE_URL=self.NANOGPT_BASE_URL,
            NANOGPT_API_PATH=self.NANOGPT_API_PATH,
            GATEWAY_TIMEOUT=self.GATEWAY_TIMEOUT,
            CATALOG_CACHE_TTL=self.CATALOG_CACHE_TTL,
        )

    @property
    def generation(self) -> GenerationSettings:
        """Get generation settings."""
        return GenerationSettings(
            TITLE_MODEL_ID=self.TITLE_MODEL_ID,
            FOLLOW_UP_MODEL_ID=self.FOLLOW_UP_MODEL_ID,
            MEDIA_POLL_INTERVAL_SECONDS=self.MEDIA_POLL_INTERVAL_SECONDS,
            MEDIA_POLL_MAX_ATTEMPTS=self.MEDIA_POLL_MAX_ATTEMPTS,
            IMAGE_SIZE=self.IMAGE_SIZE,
            UPLOAD_DIR=self.UPLOAD_DIR,
            RECONCILE_ORPHANED_GENERATIONS=self.RECONCILE_ORPHANED_GENERATIONS,
            USE_FAKE_LLM=self.USE_FAKE_LLM,
        )

    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return LoggingSettings(LOG_LEVEL=self.LOG_LEVEL, LOG_FORMAT=self.LOG_FORMAT)

    @property
    def app(self) -> ApplicationSettings:
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_HOST=self.API_HOST,
            API_PORT=self.API_PORT,
            API_BASE_PATH=self.API_BASE_PATH,
            CORS_ORIGINS=self.CORS_ORIGINS,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings

"""
Application configuration management using Pydantic settings.

Each component reads its own environment prefix; ApplicationSettings composes
them and builds the domain config objects handed to the pipeline.
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from offering_ingest import __version__
from offering_ingest.exceptions import ConfigurationError
from offering_ingest.models.domain import ExtractionConfig, PipelineConfig


class ExtractionSettings(BaseSettings):
    """Extraction service configuration with retry and timeout controls"""

    # API credentials
    api_key: str = Field(default="", description="Extraction service API key")
    api_url: str = Field(default="https://api.anthropic.com/v1/messages")
    model: str = Field(default="claude-3-haiku-20240307")

    # Request configuration
    max_tokens: int = Field(default=8000, ge=100, le=16000)
    temperature: float = Field(default=0.1, ge=0.0, le=1.0)
    timeout_seconds: float = Field(default=120.0, gt=0, le=600)

    # Retry configuration
    max_retries: int = Field(default=2, ge=0, le=5)
    retry_delay_seconds: float = Field(default=2.0, ge=0.0, le=60.0)

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        """Reject obviously truncated keys; an empty key is checked at startup"""
        v = v.strip()
        if v and len(v) < 20:
            raise ValueError("Extraction API key appears to be too short")
        return v

    model_config = SettingsConfigDict(env_prefix="EXTRACTION_")


class PipelineSettings(BaseSettings):
    """Chunking, pacing and input limits"""

    max_chunk_size: int = Field(default=500_000, ge=1000)
    max_chunks: int = Field(default=10, ge=1, le=100)
    chunk_delay_seconds: float = Field(default=1.0, ge=0.0, le=60.0)

    # Page budget truncation
    chars_per_page: int = Field(default=2000, ge=100)
    truncate_threshold_chars: int = Field(default=100_000, ge=0)
    max_text_length: int = Field(default=10_000_000, ge=1)

    model_config = SettingsConfigDict(env_prefix="PIPELINE_")


class DatabaseSettings(BaseSettings):
    """Record store database configuration"""

    database_url: Optional[str] = Field(
        default=None, description="SQLAlchemy async URL; in-memory store when unset"
    )
    database_echo: bool = Field(default=False)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: Optional[str]) -> Optional[str]:
        """Require an async driver in the URL"""
        if v and "+" not in v.split("://", 1)[0]:
            raise ValueError(
                "Database URL must name an async driver (e.g. postgresql+asyncpg://)"
            )
        return v

    model_config = SettingsConfigDict(env_prefix="DB_")


class MonitoringSettings(BaseSettings):
    """Logging configuration"""

    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json, text

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format"""
        if v not in ["json", "text"]:
            raise ValueError('Log format must be "json" or "text"')
        return v

    model_config = SettingsConfigDict(env_prefix="MONITORING_")


class ApplicationSettings(BaseSettings):
    """Main application configuration"""

    app_name: str = Field(default="Coffee Offering Ingestion")
    app_version: str = Field(default=__version__)
    environment: str = Field(default="development")
    debug_mode: bool = Field(default=False)

    # Server settings
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1024, le=65535)

    # Component settings
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment name"""
        valid_environments = ["development", "staging", "production"]
        if v not in valid_environments:
            raise ValueError(f"Environment must be one of {valid_environments}")
        return v

    @field_validator("debug_mode")
    @classmethod
    def validate_debug_mode(cls, v: bool, info) -> bool:
        """Ensure debug mode is disabled in production"""
        environment = info.data.get("environment", "development")
        if environment == "production" and v:
            raise ValueError("Debug mode must be disabled in production")
        return v

    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.environment == "production"

    def to_extraction_config(self) -> ExtractionConfig:
        extraction = self.extraction
        return ExtractionConfig(
            api_url=extraction.api_url,
            model=extraction.model,
            max_tokens=extraction.max_tokens,
            temperature=extraction.temperature,
            timeout_seconds=extraction.timeout_seconds,
            max_retries=extraction.max_retries,
            retry_delay_seconds=extraction.retry_delay_seconds,
        )

    def to_pipeline_config(self) -> PipelineConfig:
        pipeline = self.pipeline
        return PipelineConfig(
            max_chunk_size=pipeline.max_chunk_size,
            max_chunks=pipeline.max_chunks,
            chunk_delay_seconds=pipeline.chunk_delay_seconds,
            chars_per_page=pipeline.chars_per_page,
            truncate_threshold_chars=pipeline.truncate_threshold_chars,
            max_text_length=pipeline.max_text_length,
            extraction=self.to_extraction_config(),
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> ApplicationSettings:
    """
    Get application settings with caching.
    Uses LRU cache to avoid re-reading environment on every call.
    """
    return ApplicationSettings()


def validate_settings(settings: Optional[ApplicationSettings] = None) -> ApplicationSettings:
    """
    Validate settings that cannot be checked field by field.
    Call this at application startup to fail fast on configuration errors.
    """
    settings = settings or get_settings()

    if settings.is_production() and not settings.extraction.api_key:
        raise ConfigurationError(
            "Extraction API key is required in production",
            config_key="EXTRACTION_API_KEY",
        )

    return settings


def get_environment_info() -> dict:
    """Get current environment information for debugging"""
    settings = get_settings()

    return {
        "app_name": settings.app_name,
        "app_version": settings.app_version,
        "environment": settings.environment,
        "debug_mode": settings.debug_mode,
        "host": settings.host,
        "port": settings.port,
        "extraction_configured": bool(settings.extraction.api_key),
        "extraction_model": settings.extraction.model,
        "database_configured": bool(settings.database.database_url),
        "pipeline_limits": {
            "max_chunk_size": settings.pipeline.max_chunk_size,
            "max_chunks": settings.pipeline.max_chunks,
            "chunk_delay_seconds": settings.pipeline.chunk_delay_seconds,
            "max_retries": settings.extraction.max_retries,
        },
    }


# Export main settings getter for easy importing
__all__ = [
    "ApplicationSettings",
    "ExtractionSettings",
    "PipelineSettings",
    "DatabaseSettings",
    "MonitoringSettings",
    "get_settings",
    "validate_settings",
    "get_environment_info",
]

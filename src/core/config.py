"""Centralized configuration management with environment-aware defaults.

This module implements the configuration system using Pydantic Settings,
providing type-safe configuration with validation and several layered
sources.

Features:
- **Type safety**: All configuration values are validated and typed
- **Environment variables**: Supports .env files and environment overrides
- **Nested configuration**: Uses __ delimiter for complex config structures
- **JSON file**: An optional config.json in the working directory
- **Caching**: Configuration is cached for performance

Configuration sources (in order of precedence):
1. Init arguments
2. Environment variables
3. .env file in project root
4. config.json in the working directory
5. Default values in model definitions
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from src.core.constants import DEFAULT_PUBLIC_PATHS


class LogConfig(BaseModel):
    """Logging configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_formatter_type: Literal["console", "json"] | None = Field(
        default=None,
        description="Log output formatter. Auto-detected if not specified.",
    )
    excluded_paths: list[str] = Field(
        default_factory=lambda: ["/health"],
        description="Paths to exclude from request logging",
    )
    slow_request_threshold_ms: int = Field(
        default=1000,
        gt=0,
        description="Threshold for slow request warnings (milliseconds)",
    )
    sensitive_fields: list[str] = Field(
        default_factory=lambda: [
            "password",
            "token",
            "secret",
            "api_key",
            "authorization",
        ],
        description="Field names to redact",
    )


class ObservabilityConfig(BaseModel):
    """OpenTelemetry tracing configuration."""

    enable_tracing: bool = Field(
        default=True,
        description="Enable OpenTelemetry tracing",
    )
    exporter_type: Literal["console", "otlp", "none"] = Field(
        default="console",
        description="Trace exporter type. Defaults to console for development.",
    )
    exporter_endpoint: str | None = Field(
        default=None,
        description="OTLP exporter endpoint",
    )
    trace_sample_rate: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Trace sampling rate (0.0 to 1.0)",
    )

    @field_validator("exporter_endpoint", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        if v == "":
            return None
        return v


class DocumentConfig(BaseModel):
    """Static parts of the generated API document."""

    openapi_version: str = Field(default="3.0.0", description="OpenAPI version")
    title: str = Field(default="RouteForge API", description="Document title")
    version: str = Field(default="1.0.0", description="API version")
    description: str = Field(
        default="API Documentation", description="Document description"
    )
    contact: dict[str, str] = Field(
        default_factory=dict, description="Contact information"
    )
    license: dict[str, str] = Field(
        default_factory=lambda: {"name": "MIT"}, description="License information"
    )
    servers: list[dict[str, str]] = Field(
        default_factory=lambda: [
            {"url": "http://localhost:8000/api", "description": "Local server"}
        ],
        description="Servers listed in the document",
    )
    public_paths: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PUBLIC_PATHS),
        description="Path prefixes documented without security requirements",
    )

    @field_validator("public_paths", mode="after")
    @classmethod
    def ensure_leading_slash(cls, v: list[str]) -> list[str]:
        """Normalize public path prefixes to start with a slash."""
        return [p if p.startswith("/") else f"/{p}" for p in v]


class RoutesConfig(BaseModel):
    """Route discovery and mounting configuration."""

    routes_directory: Path = Field(
        default=Path("routes"),
        description="Directory scanned for route modules",
    )
    mount_prefix: str = Field(
        default="/api",
        description="Prefix the route table is mounted under",
    )
    load_on_startup: bool = Field(
        default=True,
        description="Load the routes directory during application startup",
    )
    admin_enabled: bool = Field(
        default=False,
        description="Expose the administrative route endpoints",
    )
    document_max_age: int = Field(
        default=3600,
        ge=0,
        description="Cache-Control max-age for the API document (seconds)",
    )

    @field_validator("mount_prefix", mode="after")
    @classmethod
    def validate_mount_prefix(cls, v: str) -> str:
        """Mount prefix must be empty or an absolute path without trailing slash."""
        v = v.rstrip("/")
        if v and not v.startswith("/"):
            msg = "mount_prefix must start with '/'"
            raise ValueError(msg)
        return v


class Settings(BaseSettings):
    """Main settings class for the application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        json_file="config.json",
        case_sensitive=False,
        validate_default=True,
        env_nested_delimiter="__",
    )

    # Application settings
    app_name: str = Field(default="RouteForge", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Environment the application is running in",
    )
    debug: bool = Field(default=True, description="Debug mode flag")

    # API settings
    api_host: str = Field(default="127.0.0.1", description="API host")
    api_port: int = Field(default=8000, description="API port")
    openapi_url: str | None = Field(
        default="/openapi.json", description="Live API document URL"
    )

    log_config: LogConfig = Field(
        default_factory=LogConfig, description="Logging configuration"
    )
    observability_config: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig, description="Observability configuration"
    )
    document_config: DocumentConfig = Field(
        default_factory=DocumentConfig, description="API document configuration"
    )
    routes_config: RoutesConfig = Field(
        default_factory=RoutesConfig, description="Route loading configuration"
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Add config.json below the environment sources."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    def model_post_init(self, __context: object) -> None:
        """Post initialization to set environment-based defaults."""
        super().model_post_init(__context)

        if self.log_config.log_formatter_type is None:
            self.log_config.log_formatter_type = (
                "console" if self.environment == "development" else "json"
            )

        if (
            self.environment == "production"
            and self.observability_config.trace_sample_rate == 1.0
        ):
            self.observability_config.trace_sample_rate = 0.1

    @field_validator("openapi_url", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        _ = cls
        if v == "":
            return None
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

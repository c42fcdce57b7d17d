"""Configuration management for sheet lookup.

This module provides centralized configuration using pydantic-settings.
All configuration options can be set via environment variables with the
SHL_ prefix, or via a .env file in the project root.

Environment Variables:
    SHL_MAX_FILE_SIZE_MB: Maximum file upload size in MB (default: 10)
    SHL_STORAGE_DIR: Root directory of the local file store
    SHL_STORAGE_BUCKET: Bucket (sub-directory) holding uploaded objects
    SHL_PUBLIC_BASE_URL: Optional base URL used to build public file links
    SHL_PUBLISHED_SHEET_URL: Default published Google Sheet for GET /sheets
    SHL_SHEETS_FETCH_TIMEOUT_SECONDS: Google Sheets fetch timeout (default: 15)
    SHL_SHEETS_USER_AGENT: User-Agent sent when fetching Google Sheets
    SHL_DEFAULT_PAGE_SIZE: Default page size for file listings (default: 10)
    SHL_MAX_PAGE_SIZE: Largest accepted page size (default: 100)
    SHL_LOG_LEVEL: Logging level (default: INFO)
    SHL_DEBUG: Enable debug mode (default: false)
    SHL_CORS_ORIGINS: Comma-separated CORS origins (default: *)
    SHL_SERVER_HOST: Server bind host (default: 0.0.0.0)
    SHL_SERVER_PORT: Server bind port (default: 8000)
"""

import logging
from typing import Any

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables prefixed with SHL_
    or via a .env file.

    Example .env file:
        SHL_STORAGE_DIR=/var/lib/sheet_lookup
        SHL_PUBLISHED_SHEET_URL=https://docs.google.com/spreadsheets/d/e/.../pub?output=csv
        SHL_LOG_LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="SHL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # =========================================================================
    # File Upload Settings
    # =========================================================================

    max_file_size_mb: int = 10
    """Maximum file upload size in megabytes."""

    # =========================================================================
    # Storage Settings
    # =========================================================================

    storage_dir: str = "/tmp/sheet_lookup"
    """Root directory for stored objects and the metadata index."""

    storage_bucket: str = "uploaded-files"
    """Bucket name; objects live under storage_dir/storage_bucket."""

    public_base_url: str | None = None
    """Base URL that serves the bucket publicly, if any."""

    # =========================================================================
    # Google Sheets Settings
    # =========================================================================

    published_sheet_url: SecretStr | None = None
    """Published CSV export used by GET /sheets when no url is given."""

    sheets_fetch_timeout_seconds: float = 15.0
    """Timeout for fetching a Google Sheet export."""

    sheets_user_agent: str = "Mozilla/5.0 (compatible; DataFetcher/1.0)"
    """User-Agent header sent to Google Sheets."""

    # =========================================================================
    # Listing Settings
    # =========================================================================

    default_page_size: int = 10
    """Number of files returned per page when no limit is given."""

    max_page_size: int = 100
    """Upper bound for the limit query parameter."""

    # =========================================================================
    # Logging Settings
    # =========================================================================

    log_level: str = "INFO"
    """Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL."""

    debug: bool = False
    """Enable debug mode with additional logging and error details."""

    # =========================================================================
    # Server Settings
    # =========================================================================

    cors_origins: str = "*"
    """Comma-separated list of allowed CORS origins, or * for all."""

    server_host: str = "0.0.0.0"
    """Host address for the server to bind to."""

    server_port: int = 8000
    """Port for the server to listen on."""

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(valid_levels)}"
            )
        return upper_v

    @field_validator("max_file_size_mb")
    @classmethod
    def validate_file_size(cls, v: int) -> int:
        """Validate file size is positive and reasonable."""
        if not 1 <= v <= 500:
            raise ValueError(f"max_file_size_mb must be between 1 and 500, got {v}")
        return v

    @field_validator("storage_bucket")
    @classmethod
    def validate_bucket(cls, v: str) -> str:
        """Validate the bucket is a single, non-empty path segment."""
        v = v.strip()
        if not v or "/" in v or "\\" in v or v in {".", ".."}:
            raise ValueError(
                f"storage_bucket must be a plain directory name, got {v!r}"
            )
        return v

    @field_validator("sheets_fetch_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate the fetch timeout is positive."""
        if v <= 0:
            raise ValueError(
                f"sheets_fetch_timeout_seconds must be positive, got {v}"
            )
        return v

    @field_validator("default_page_size", "max_page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        """Validate page sizes are at least one."""
        if v < 1:
            raise ValueError(f"page size must be at least 1, got {v}")
        return v

    @field_validator("server_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError(f"server_port must be between 1 and 65535, got {v}")
        return v

    @model_validator(mode="after")
    def validate_page_bounds(self) -> "Settings":
        """Validate the default page size does not exceed the maximum."""
        if self.default_page_size > self.max_page_size:
            raise ValueError(
                f"default_page_size ({self.default_page_size}) must not exceed "
                f"max_page_size ({self.max_page_size})"
            )
        return self

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def max_file_size_bytes(self) -> int:
        """Get max file size in bytes."""
        return self.max_file_size_mb * 1024 * 1024

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def log_level_int(self) -> int:
        """Get log level as integer for logging module."""
        level: int = getattr(logging, self.log_level)
        return level

    def get_published_sheet_url(self) -> str:
        """Get the published sheet URL value.

        Returns:
            The URL string. Returns empty string if not set.

        Note:
            Published links grant read access to anyone holding them, so the
            value is kept in a SecretStr and only unwrapped here.
        """
        if self.published_sheet_url is None:
            return ""
        return self.published_sheet_url.get_secret_value()

    def to_safe_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary with sensitive values masked.

        Returns:
            Dictionary representation with the published sheet URL masked.
        """
        return {
            "max_file_size_mb": self.max_file_size_mb,
            "storage_dir": self.storage_dir,
            "storage_bucket": self.storage_bucket,
            "public_base_url": self.public_base_url,
            "published_sheet_url": (
                "***" if self.get_published_sheet_url() else "(not set)"
            ),
            "sheets_fetch_timeout_seconds": self.sheets_fetch_timeout_seconds,
            "sheets_user_agent": self.sheets_user_agent,
            "default_page_size": self.default_page_size,
            "max_page_size": self.max_page_size,
            "log_level": self.log_level,
            "debug": self.debug,
            "cors_origins": self.cors_origins,
            "server_host": self.server_host,
            "server_port": self.server_port,
        }


def validate_settings_on_startup(s: Settings) -> None:
    """Validate settings on application startup.

    Args:
        s: Settings instance to validate.
    """
    logger = logging.getLogger(__name__)

    if not s.get_published_sheet_url():
        logger.warning(
            "SHL_PUBLISHED_SHEET_URL is not configured. GET /sheets requires an "
            "explicit url parameter."
        )

    if s.cors_origins == "*" and not s.debug:
        logger.warning(
            "CORS is configured to allow all origins (*). "
            "Consider restricting this in production."
        )

    # Log configuration summary (without sensitive values)
    summary = ", ".join(f"{k}={v}" for k, v in s.to_safe_dict().items())
    logger.info(f"Configuration loaded: {summary}")


# Create the global settings instance
settings = Settings()

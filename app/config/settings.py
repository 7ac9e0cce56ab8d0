"""
==============================================================================
Application Settings Module
==============================================================================

Production-grade configuration management using Pydantic Settings.

This module implements the Singleton pattern to ensure a single global
configuration instance throughout the application lifecycle.

Features:
---------
- Environment variable loading with type validation
- .env file support for local development
- Computed properties for derived values
- Thread-safe singleton implementation

Configuration Priority (highest to lowest):
------------------------------------------
1. Environment variables
2. .env file
3. Default values

Scanner Tuning:
---------------
RENDER_DPI trades decode accuracy against memory and CPU: a page rendered
at D dpi costs roughly (D/72)^2 times the pixels of the page in points.
MAX_WORKERS bounds how many page rasters are alive at once.

==============================================================================
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Module logger
logger = logging.getLogger(__name__)


SUPPORTED_DETECTOR_BACKENDS = ("zxingcpp", "pyzbar")


def _default_max_workers() -> int:
    return max(1, min(4, os.cpu_count() or 1))


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    This class uses Pydantic Settings to provide type-safe configuration
    with automatic environment variable loading and validation.

    Attributes:
        app_name: Display name for the application
        app_env: Environment mode (development/staging/production)
        debug: Enable debug mode for verbose logging
        host: Server bind address
        port: Server port number
        cors_origins: Allowed CORS origins (JSON array string)
        render_dpi: Resolution used to rasterize PDF pages
        rotate_landscape: Rotate landscape PDF pages to portrait before scanning
        max_workers: Upper bound of pages scanned concurrently per request
        detector_backend: Barcode decoding library bound at start-up
        try_harder: Let the decoder spend extra effort (rotations, downscaling)
        max_upload_mb: Largest accepted upload
        scan_timeout_seconds: Optional per-request scan deadline

    Example:
        >>> settings = Settings()
        >>> print(settings.render_dpi)
        144
        >>> print(settings.is_production)
        False
    """

    # =========================================================================
    # PYDANTIC SETTINGS CONFIGURATION
    # =========================================================================
    model_config = SettingsConfigDict(
        # Load from .env file if present
        env_file=".env",
        env_file_encoding="utf-8",
        # Environment variables are case-insensitive
        case_sensitive=False,
        # Ignore extra environment variables
        extra="ignore",
        # Validate default values
        validate_default=True,
    )

    # =========================================================================
    # APPLICATION SETTINGS
    # =========================================================================
    app_name: str = Field(
        default="Document Barcode Scanner",
        description="Display name for the application"
    )

    app_env: str = Field(
        default="development",
        description="Environment mode: development, staging, production"
    )

    debug: bool = Field(
        default=False,
        description="Enable debug mode for verbose logging"
    )

    # =========================================================================
    # SERVER SETTINGS
    # =========================================================================
    host: str = Field(
        default="0.0.0.0",
        description="Server bind address"
    )

    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Server port number"
    )

    cors_origins: str = Field(
        default='["*"]',
        description="Allowed CORS origins as JSON array string"
    )

    # =========================================================================
    # RASTERIZATION SETTINGS
    # =========================================================================
    render_dpi: int = Field(
        default=144,
        ge=72,
        le=600,
        description="Resolution (dots per inch) used to render PDF pages"
    )

    rotate_landscape: bool = Field(
        default=True,
        description="Rotate landscape pages by 90 degrees before scanning"
    )

    # =========================================================================
    # SCANNING SETTINGS
    # =========================================================================
    max_workers: int = Field(
        default_factory=_default_max_workers,
        ge=1,
        le=32,
        description="Maximum pages scanned concurrently within one request"
    )

    detector_backend: str = Field(
        default="zxingcpp",
        description="Barcode decoding backend: zxingcpp or pyzbar"
    )

    try_harder: bool = Field(
        default=True,
        description="Spend extra decoder effort on rotated or large symbols"
    )

    # =========================================================================
    # UPLOAD SETTINGS
    # =========================================================================
    max_upload_mb: int = Field(
        default=20,
        ge=1,
        le=200,
        description="Largest accepted upload in megabytes"
    )

    scan_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Abort scans running longer than this (unset = no limit)"
    )

    # =========================================================================
    # VALIDATORS
    # =========================================================================
    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, value: str) -> str:
        """
        Validate and normalize application environment.

        Args:
            value: Raw environment value

        Returns:
            Lowercase normalized environment name
        """
        valid_envs = {"development", "staging", "production"}
        normalized = value.lower().strip()

        if normalized not in valid_envs:
            logger.warning(
                f"Unknown environment '{value}', defaulting to 'development'"
            )
            return "development"

        return normalized

    @field_validator("detector_backend")
    @classmethod
    def validate_detector_backend(cls, value: str) -> str:
        """
        Validate the barcode backend name.

        Raises:
            ValueError: If backend is not supported
        """
        normalized = value.lower().strip()

        if normalized not in SUPPORTED_DETECTOR_BACKENDS:
            raise ValueError(
                f"Unsupported detector backend: {value}. "
                f"Supported: {', '.join(SUPPORTED_DETECTOR_BACKENDS)}"
            )

        return normalized

    # =========================================================================
    # COMPUTED PROPERTIES
    # =========================================================================
    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def max_upload_bytes(self) -> int:
        """Upload limit in bytes."""
        return self.max_upload_mb * 1024 * 1024

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Parse CORS origins from JSON string to list.

        Returns:
            List of allowed origin strings
        """
        try:
            origins = json.loads(self.cors_origins)
            if isinstance(origins, list):
                return origins
            return ["*"]
        except json.JSONDecodeError:
            logger.warning(
                f"Invalid CORS origins JSON: {self.cors_origins}, "
                "defaulting to ['*']"
            )
            return ["*"]

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Settings(app_name={self.app_name!r}, "
            f"app_env={self.app_env!r}, "
            f"render_dpi={self.render_dpi}, "
            f"max_workers={self.max_workers}, "
            f"detector_backend={self.detector_backend!r})"
        )


# =============================================================================
# SINGLETON INSTANCE MANAGEMENT
# =============================================================================

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the global Settings instance (singleton pattern).

    Uses lru_cache to ensure only one Settings instance is created
    throughout the application lifecycle.

    Returns:
        Global Settings instance
    """
    settings = Settings()

    if settings.debug:
        logger.info(f"Configuration loaded: {settings}")

    return settings

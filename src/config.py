"""Application configuration settings.

This module provides centralized configuration management using environment
variables with sensible defaults.
"""

import os
from dataclasses import dataclass


def _get_int_env(name: str, default: int) -> int:
    """Get an integer value from environment variable.

    Args:
        name: Environment variable name.
        default: Default value if not set or not a valid integer.

    Returns:
        Integer value from environment.
    """
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_bool_env(name: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable.

    Args:
        name: Environment variable name.
        default: Default value if not set or not recognized.

    Returns:
        Boolean value from environment.
    """
    value = os.getenv(name, "").strip().lower()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    return default


def _get_float_env(name: str, default: float) -> float:
    """Get a float value from environment variable."""
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class Settings:
    """Application settings loaded from environment variables.

    Attributes:
        DASHBOARD_API_URL: Base URL of the agent analytics service.
        DASHBOARD_API_KEY: Bearer token for the analytics service.
        REQUEST_TIMEOUT_SECONDS: Per-request HTTP timeout.
        GATEWAY_MAX_ATTEMPTS: Attempts per source call, including the first.
        DEFAULT_WINDOW: Reporting window selected when none is given.
        COST_UNIT: Unit suffix for resource cost values.
        LOG_LEVEL: Logging level.
        LOG_JSON: Emit logs as JSON lines.
    """

    # Analytics service
    DASHBOARD_API_URL: str = "http://localhost:4000/api"
    DASHBOARD_API_KEY: str | None = None
    REQUEST_TIMEOUT_SECONDS: float = 10.0
    GATEWAY_MAX_ATTEMPTS: int = 3

    # Dashboard
    DEFAULT_WINDOW: str = "30d"
    COST_UNIT: str = "SOMI"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables.

        Returns:
            Settings instance populated from environment.
        """
        return cls(
            DASHBOARD_API_URL=os.getenv("DASHBOARD_API_URL", "http://localhost:4000/api"),
            DASHBOARD_API_KEY=os.getenv("DASHBOARD_API_KEY"),
            REQUEST_TIMEOUT_SECONDS=_get_float_env("REQUEST_TIMEOUT_SECONDS", 10.0),
            GATEWAY_MAX_ATTEMPTS=max(1, _get_int_env("GATEWAY_MAX_ATTEMPTS", 3)),
            DEFAULT_WINDOW=os.getenv("DEFAULT_WINDOW", "30d"),
            COST_UNIT=os.getenv("COST_UNIT", "SOMI"),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
            LOG_JSON=_get_bool_env("LOG_JSON"),
        )


# Global settings instance
settings = Settings.from_env()

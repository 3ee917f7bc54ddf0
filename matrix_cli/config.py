"""
Centralized Configuration Management

Settings for a matrix-cli run. Every global option can come from the command
line, from a MATRIX_CLI_<OPTION> environment variable, or from a .env file, in
that order of precedence.
"""

from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

ENV_PREFIX = "MATRIX_CLI_"
DEVICE_NAME = "matrix-cli"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


class CliSettings(BaseSettings):
    """Global options shared by every command."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX, env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    homeserver_url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    session_file: Optional[Path] = None
    store_path: Optional[Path] = None
    dry_run: bool = False

    # Logging
    log_level: str = "WARNING"
    log_format: str = "text"

    @field_validator("homeserver_url")
    @classmethod
    def _check_homeserver_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("expected an http(s) URL such as https://matrix.org")
        return value.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"expected one of {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        if value not in LOG_FORMATS:
            raise ValueError(f"expected one of {', '.join(LOG_FORMATS)}")
        return value


def load_settings(overrides: Optional[Dict[str, Any]] = None) -> CliSettings:
    """
    Build settings from the environment with command-line overrides applied.

    Args:
        overrides: option values given on the command line; None values are
            ignored so the environment can supply them

    Raises:
        ConfigurationError: if any option fails validation
    """
    values = {key: value for key, value in (overrides or {}).items() if value is not None}
    try:
        return CliSettings(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration - {problems}") from e

"""
Runtime configuration for the Synaptik MCP server.

Settings are layered: built-in defaults, then an optional YAML file, then
SYNAPTIK_* environment variables, then explicit overrides (CLI options).
"""

import logging
import os
from pathlib import Path
from typing import Optional, Dict, Any, Union
from zoneinfo import ZoneInfo

import tzlocal
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:9001"

# Environment variable -> settings field
ENV_VARS = {
    "SYNAPTIK_API_URL": "api_url",
    "SYNAPTIK_API_TIMEOUT": "api_timeout",
    "SYNAPTIK_LINK_MAX_CONCURRENCY": "link_max_concurrency",
    "SYNAPTIK_BATCH_TIMEOUT": "batch_timeout",
    "SYNAPTIK_TIMEZONE": "timezone",
    "SYNAPTIK_LOG_LEVEL": "log_level",
    "SYNAPTIK_SERVER_NAME": "server_name",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigurationError(ValueError):
    """Raised when a configuration source cannot be loaded or is invalid."""


def system_timezone() -> str:
    """
    IANA name of the local timezone (e.g. Europe/Berlin), used for overdue/today queries.

    The remote service only accepts region IDs, so abbreviations (CEST) and
    POSIX TZ strings (CET-1CEST) are rejected and UTC is used instead.
    """
    try:
        name = tzlocal.get_localzone_name()
        if not name:
            return "UTC"
        return ZoneInfo(name).key
    except (LookupError, ValueError, OSError) as e:
        logger.warning(f"Could not resolve local timezone to a region ID ({e!r}), using UTC")
        return "UTC"


class Settings(BaseModel):
    """Validated server settings."""

    api_url: str = Field(DEFAULT_API_URL, min_length=1)
    api_timeout: float = Field(30.0, gt=0)
    link_max_concurrency: int = Field(
        0, ge=0, description="Ceiling on in-flight link/unlink calls per batch; 0 means unbounded"
    )
    batch_timeout: Optional[float] = Field(
        None, gt=0, description="Overall deadline for one link/unlink batch in seconds"
    )
    timezone: str = Field(default_factory=system_timezone)
    log_level: str = "INFO"
    server_name: str = "Synaptik MCP"

    @field_validator("api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("api_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level


def load_yaml_config(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load a YAML settings file.

    Raises:
        ConfigurationError: If the file is missing, unparsable, or not a mapping
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a YAML dictionary")

    unknown = set(data) - set(Settings.model_fields)
    if unknown:
        logger.warning(f"Ignoring unknown config keys in {config_path}: {sorted(unknown)}")
    return {key: value for key, value in data.items() if key in Settings.model_fields}


def _env_overrides() -> Dict[str, Any]:
    overrides = {}
    for env_name, field_name in ENV_VARS.items():
        value = os.getenv(env_name)
        if value is not None and value.strip():
            overrides[field_name] = value.strip()
    return overrides


def load_settings(
    config_path: Optional[Union[str, Path]] = None,
    **overrides: Any,
) -> Settings:
    """
    Resolve settings from YAML, environment and explicit overrides.

    Overrides whose value is None are ignored so CLI options left unset do
    not mask lower layers.

    Raises:
        ConfigurationError: If any layer holds an invalid value
    """
    merged: Dict[str, Any] = {}
    if config_path:
        merged.update(load_yaml_config(config_path))
    merged.update(_env_overrides())
    merged.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return Settings(**merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the process-wide settings from the environment."""
    global _settings
    if _settings is None:
        _settings = load_settings()
        logger.info(
            f"Loaded settings (api_url={_settings.api_url}, "
            f"link_max_concurrency={_settings.link_max_concurrency or 'unbounded'})"
        )
    return _settings


def set_settings(settings: Settings) -> None:
    """Install settings resolved elsewhere (the CLI) as the process-wide instance."""
    global _settings
    _settings = settings


def reset_settings() -> None:
    """Reset the global settings (primarily for testing)."""
    global _settings
    _settings = None

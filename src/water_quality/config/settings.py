"""
Configuration settings for the water quality pipeline.

This module handles loading and validating configuration from TOML files
and environment variables.

Configuration hierarchy (later overrides earlier):
1. Default values (built-in)
2. config/default.toml
3. config/local.toml (gitignored)
4. File named by WQ_CONFIG_PATH
5. Environment variables (WQ_* prefix)
6. Command-line arguments

Example:
    >>> from water_quality.config import get_settings
    >>>
    >>> settings = get_settings()
    >>> print(f"Database: {settings.database_path}")
    >>> print(f"Merge window: {settings.buffer.merge_window_minutes} min")
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import pydantic
from pydantic import BaseModel, ConfigDict, Field, model_validator

from water_quality.exceptions import ConfigurationError

ENV_PREFIX = "WQ_"
CONFIG_PATH_ENV = "WQ_CONFIG_PATH"


class DatabaseSettings(BaseModel):
    """Database settings."""

    model_config = ConfigDict(extra="ignore")

    path: str = Field(default="water_quality.db", description="Database file path")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Connection timeout")
    wal_mode: bool = Field(default=True, description="Enable WAL mode")


class BufferSettings(BaseModel):
    """Pending-entry buffer settings."""

    model_config = ConfigDict(extra="ignore")

    merge_window_minutes: float = Field(
        default=5.0,
        gt=0,
        description="Maximum age of a pending entry that may still be paired",
    )
    incomplete_after_minutes: float = Field(
        default=10.0,
        gt=0,
        description="Age after which unmatched entries are reported as incomplete",
    )
    max_claim_attempts: int = Field(
        default=3,
        ge=1,
        description="Match-and-claim cycles before giving up on a facility",
    )

    @model_validator(mode="after")
    def _check_windows(self) -> BufferSettings:
        if self.incomplete_after_minutes < self.merge_window_minutes:
            raise ValueError("incomplete_after_minutes must be >= merge_window_minutes")
        return self

    @property
    def merge_window(self) -> timedelta:
        """Merge window as a timedelta."""
        return timedelta(minutes=self.merge_window_minutes)

    @property
    def incomplete_after(self) -> timedelta:
        """Incomplete-reading reporting window as a timedelta."""
        return timedelta(minutes=self.incomplete_after_minutes)


class BandThreshold(BaseModel):
    """Thresholds for a parameter with an optimal band and hard bounds on both sides."""

    model_config = ConfigDict(extra="ignore")

    min: float
    max: float
    optimal_min: float
    optimal_max: float

    @model_validator(mode="after")
    def _check_order(self) -> BandThreshold:
        if not self.min < self.optimal_min <= self.optimal_max < self.max:
            raise ValueError(
                "expected min < optimal_min <= optimal_max < max, got "
                f"{self.min} / {self.optimal_min} / {self.optimal_max} / {self.max}"
            )
        return self


class CeilingThreshold(BaseModel):
    """Thresholds for a parameter where lower is better."""

    model_config = ConfigDict(extra="ignore")

    max: float = Field(..., gt=0)
    optimal_max: float = Field(..., ge=0)
    min_reduction_percent: float = Field(
        default=0.0,
        ge=0,
        le=100,
        description="Minimum inlet to outlet reduction expected from treatment",
    )

    @model_validator(mode="after")
    def _check_order(self) -> CeilingThreshold:
        if not self.optimal_max < self.max:
            raise ValueError(f"expected optimal_max < max, got {self.optimal_max} / {self.max}")
        return self


class ThresholdSettings(BaseModel):
    """Regulatory thresholds used for scoring and violation detection."""

    model_config = ConfigDict(extra="ignore")

    ph: BandThreshold = Field(
        default_factory=lambda: BandThreshold(min=6.0, max=9.0, optimal_min=6.5, optimal_max=8.5)
    )
    tds: CeilingThreshold = Field(
        default_factory=lambda: CeilingThreshold(
            max=500.0, optimal_max=300.0, min_reduction_percent=15.0
        )
    )
    turbidity: CeilingThreshold = Field(
        default_factory=lambda: CeilingThreshold(
            max=25.0, optimal_max=5.0, min_reduction_percent=20.0
        )
    )
    temperature: BandThreshold = Field(
        default_factory=lambda: BandThreshold(
            min=20.0, max=35.0, optimal_min=25.0, optimal_max=30.0
        )
    )


class NotificationSettings(BaseModel):
    """Notification gateway settings."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = Field(default=True, description="Enqueue aggregated notifications")
    gateway: Literal["log", "webhook"] = Field(
        default="log",
        description="Delivery backend",
    )
    webhook_urls: dict[str, str] = Field(
        default_factory=dict,
        description="Channel name -> webhook URL (webhook gateway only)",
    )
    api_key: str | None = Field(default=None, description="Sent as X-Internal-Key")
    timeout_seconds: float = Field(default=5.0, gt=0, description="Per-request timeout")
    queue_size: int = Field(default=100, ge=1, description="Pending notification jobs")
    workers: int = Field(default=1, ge=1, description="Delivery worker threads")

    @model_validator(mode="after")
    def _check_webhook(self) -> NotificationSettings:
        if self.gateway == "webhook" and not self.webhook_urls:
            raise ValueError("webhook gateway requires at least one entry in webhook_urls")
        return self


class LoggingSettings(BaseModel):
    """Logging settings."""

    model_config = ConfigDict(extra="ignore")

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="console", description="Output format (console or json)")
    include_timestamp: bool = Field(default=True)
    include_location: bool = Field(default=False)


class Settings(BaseModel):
    """Main settings container."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(default="water-quality")
    base_dir: Path = Field(default=Path("data"))

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    buffer: BufferSettings = Field(default_factory=BufferSettings)
    thresholds: ThresholdSettings = Field(default_factory=ThresholdSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def database_path(self) -> Path:
        """Get absolute database path."""
        db_path = Path(self.database.path)
        if db_path.is_absolute():
            return db_path
        return self.base_dir / db_path


def _find_config_files() -> list[Path]:
    """Find configuration files in standard locations.

    Returns:
        List of config file paths (in order of priority)
    """
    files = []

    cwd = Path.cwd()
    for name in ["config/default.toml", "config/local.toml"]:
        path = cwd / name
        if path.exists():
            files.append(path)

    env_config = os.environ.get(CONFIG_PATH_ENV)
    if env_config:
        path = Path(env_config)
        if path.exists():
            files.append(path)

    return files


def _load_toml(path: Path) -> dict[str, Any]:
    """Load a TOML file.

    Raises:
        ConfigurationError: If the file cannot be read or parsed
    """
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(f"Cannot load config file {path}: {e}") from e


def _merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge dictionaries (override wins)."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dicts(result[key], value)
        else:
            result[key] = value

    return result


def _coerce(original: Any, value: str) -> Any:
    """Convert an environment string to the type of the value it replaces."""
    if isinstance(original, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(original, int):
        return int(value)
    if isinstance(original, float):
        return float(value)
    return value


def _set_nested(current: dict[str, Any], parts: list[str], value: str) -> bool:
    """Assign ``value`` to the key path spelled by underscore-split ``parts``.

    Keys may themselves contain underscores, so the longest matching
    prefix is tried first (``buffer_merge_window_minutes`` resolves to
    ``buffer.merge_window_minutes``).
    """
    for end in range(len(parts), 0, -1):
        name = "_".join(parts[:end])
        if name not in current:
            continue
        rest = parts[end:]
        target = current[name]
        if not rest:
            if isinstance(target, dict):
                continue
            current[name] = _coerce(target, value)
            return True
        if isinstance(target, dict) and _set_nested(target, rest, value):
            return True
    return False


def _apply_env_overrides(
    config: dict[str, Any],
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Apply environment variable overrides.

    Environment variables with the WQ_ prefix override config values.
    Example: WQ_BUFFER_MAX_CLAIM_ATTEMPTS -> buffer.max_claim_attempts

    Args:
        config: Configuration dictionary (must already hold every default key)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Modified configuration
    """
    env = os.environ if environ is None else environ

    for key, value in env.items():
        if not key.startswith(ENV_PREFIX) or key == CONFIG_PATH_ENV:
            continue
        parts = key[len(ENV_PREFIX) :].lower().split("_")
        try:
            _set_nested(config, parts, value)
        except ValueError as e:
            raise ConfigurationError(f"Invalid value for {key}: {value!r}") from e

    return config


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from configuration files and the environment.

    Args:
        config_path: Optional explicit config file path

    Returns:
        Settings instance

    Raises:
        ConfigurationError: If a file is unreadable or a value is invalid
    """
    config: dict[str, Any] = Settings().model_dump(mode="json")

    files = [Path(config_path)] if config_path else _find_config_files()

    for path in files:
        config = _merge_dicts(config, _load_toml(path))

    config = _apply_env_overrides(config)

    try:
        return Settings(**config)
    except pydantic.ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings()


def reload_settings() -> Settings:
    """Reload settings (clears cache).

    Returns:
        Fresh Settings instance
    """
    get_settings.cache_clear()
    return get_settings()

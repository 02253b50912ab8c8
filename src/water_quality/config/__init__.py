"""
Configuration management for the water quality pipeline.

Configuration hierarchy:
1. Default values (built-in)
2. config/default.toml (project defaults)
3. config/local.toml (site overrides, gitignored)
4. File named by WQ_CONFIG_PATH
5. Environment variables (WQ_* prefix)
6. Command-line arguments

Example:
    >>> from water_quality.config import get_settings
    >>>
    >>> settings = get_settings()
    >>> print(settings.thresholds.ph.max)

Configuration files use TOML format. See config/default.toml for all options.
"""

from water_quality.config.settings import (
    BandThreshold,
    BufferSettings,
    CeilingThreshold,
    NotificationSettings,
    Settings,
    ThresholdSettings,
    get_settings,
    load_settings,
    reload_settings,
)

__all__ = [
    "BandThreshold",
    "BufferSettings",
    "CeilingThreshold",
    "NotificationSettings",
    "Settings",
    "ThresholdSettings",
    "get_settings",
    "load_settings",
    "reload_settings",
]

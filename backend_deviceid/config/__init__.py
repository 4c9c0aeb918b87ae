"""
Configuration management for Backend DeviceID.

Loads settings from environment variables and an optional .env file and
exposes the engine's scoring and matching thresholds.
"""

from backend_deviceid.config.env import get_database_url, load_deviceid_env
from backend_deviceid.config.settings import (
    MatchSettings,
    ScoringSettings,
    Settings,
    get_settings,
)

__all__ = [
    "MatchSettings",
    "ScoringSettings",
    "Settings",
    "get_database_url",
    "get_settings",
    "load_deviceid_env",
]

"""Configuration package."""

from trademind.config.settings import (
    AppSettings,
    GoogleDriveSettings,
    LocalStorageSettings,
    Settings,
    SyncSettings,
    TiltSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleDriveSettings",
    "LocalStorageSettings",
    "Settings",
    "SyncSettings",
    "TiltSettings",
    "get_settings",
    "validate_all_settings",
]

"""
Configuration Management for TradeMind

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every tunable of the sync engine (debounce window, tilt thresholds,
storage location, Drive credentials) is validated at startup instead of
being scattered as literals through the code.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleDriveSettings(BaseSettings):
    """Google Drive backup configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_DRIVE_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google OAuth authorized-user or service account JSON"
    )
    credentials_type: Literal["authorized_user", "service_account"] = Field(
        default="authorized_user",
        description="Kind of credentials file at credentials_path"
    )
    client_id: Optional[str] = Field(
        default=None,
        description="OAuth client ID the credentials were issued for"
    )
    backup_file_name: str = Field(
        default="trademind_backup.json",
        description="Name of the single backup document on Drive"
    )
    scopes: str = Field(
        default=(
            "https://www.googleapis.com/auth/drive.file "
            "email profile openid"
        ),
        description="Space-separated OAuth scopes"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before connecting to Drive."
            )
        return v

    @property
    def scopes_list(self) -> list[str]:
        """Get scopes as a list, expanding the short OpenID names."""
        expanded = {
            "email": "https://www.googleapis.com/auth/userinfo.email",
            "profile": "https://www.googleapis.com/auth/userinfo.profile",
        }
        return [expanded.get(scope, scope) for scope in self.scopes.split()]


class LocalStorageSettings(BaseSettings):
    """Local durable storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOCAL_STORAGE_",
        extra="ignore"
    )

    db_path: str = Field(
        default="trademind.db",
        description="SQLite file holding the local key-value mirror"
    )
    key_prefix: str = Field(
        default="tradeMind_",
        description="Prefix for every key written to local storage"
    )


class SyncSettings(BaseSettings):
    """Sync scheduler configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        extra="ignore"
    )

    debounce_seconds: float = Field(
        default=5.0,
        gt=0.0,
        le=300.0,
        description="Quiet period after the last mutation before pushing"
    )
    # 1 means a failed push is only re-attempted by the next mutation
    # or a manual action.
    retry_attempts: int = Field(
        default=1,
        ge=1,
        le=10,
        description="Attempts per remote call (1 = no automatic retry)"
    )
    retry_min_wait_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Lower bound of the exponential backoff between attempts"
    )
    retry_max_wait_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Upper bound of the exponential backoff between attempts"
    )


class TiltSettings(BaseSettings):
    """Tilt interlock configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TILT_",
        extra="ignore"
    )

    loss_window_minutes: int = Field(
        default=30,
        ge=1,
        description="Two losses closer than this trigger the lock"
    )
    cooldown_seconds: int = Field(
        default=60,
        ge=1,
        description="Length of the cooldown lock"
    )
    tick_seconds: float = Field(
        default=1.0,
        gt=0.0,
        description="Interval of the countdown tick"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Minimum level for engine logs"
    )
    log_json: bool = Field(
        default=True,
        description="Render logs as JSON lines (False = console renderer)"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily so the engine can run offline
    # without Drive credentials configured.

    @property
    def google_drive(self) -> GoogleDriveSettings:
        return GoogleDriveSettings()

    @property
    def local_storage(self) -> LocalStorageSettings:
        return LocalStorageSettings()

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

    @property
    def tilt(self) -> TiltSettings:
        return TiltSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    checks = {
        "google_drive": lambda: settings.google_drive,
        "local_storage": lambda: settings.local_storage,
        "sync": lambda: settings.sync,
        "tilt": lambda: settings.tilt,
        "app": lambda: settings.app,
    }

    for name, load in checks.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results

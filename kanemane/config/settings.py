"""
Configuration Management for Kanemane

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Relational database holding assets, transactions and bot state."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite:///kanemane.db",
        description="SQLAlchemy database URL"
    )
    echo: bool = Field(
        default=False,
        description="Log every SQL statement"
    )


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )
    timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        le=120,
        description="Upper bound for a single parse or scan call"
    )


class WhatsAppSettings(BaseSettings):
    """WAHA (WhatsApp HTTP API) gateway configuration."""

    model_config = SettingsConfigDict(
        env_prefix="WAHA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the WAHA server"
    )
    session: str = Field(
        default="kanemane-production",
        description="WAHA session name"
    )
    api_key: Optional[str] = Field(
        default=None,
        description="Sent as X-Api-Key when set"
    )
    webhook_secret: Optional[str] = Field(
        default=None,
        description="HMAC-SHA256 secret for inbound webhook signatures"
    )
    verify_token: Optional[str] = Field(
        default=None,
        description="Token expected by the webhook verification handshake"
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=120,
        description="Timeout for calls to the WAHA server"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets report export configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the spreadsheet that receives exported reports"
    )
    report_title_prefix: str = Field(
        default="Laporan",
        description="Prefix for exported worksheet titles"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before exporting reports."
            )
        return v


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
    frontend_url: str = Field(
        default="https://kanemane.com",
        description="Public web app URL used in onboarding links"
    )

    # Conversation state
    conversation_ttl_seconds: int = Field(
        default=600,
        ge=30,
        le=86400,
        description="Lifetime of a bot conversation step since its last write"
    )

    # Ledger policy
    strict_update_check: bool = Field(
        default=False,
        description="Refuse transaction edits that leave an asset below zero"
    )

    # Receipt uploads
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum receipt image size in MB"
    )

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def whatsapp(self) -> WhatsAppSettings:
        return WhatsAppSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

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

    Returns a dict of {setting_name: is_valid}, plus `<name>_error`
    entries for the failing ones. Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("database", "gemini", "whatsapp", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results

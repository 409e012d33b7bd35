"""Configuration package."""

from kanemane.config.settings import (
    AppSettings,
    DatabaseSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    Settings,
    WhatsAppSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "Settings",
    "WhatsAppSettings",
    "get_settings",
    "validate_all_settings",
]

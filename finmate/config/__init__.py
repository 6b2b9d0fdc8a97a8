"""Configuration package."""

from finmate.config.settings import (
    AppSettings,
    ExchangeRateSettings,
    GoogleSheetsSettings,
    ReconciliationSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "ExchangeRateSettings",
    "GoogleSheetsSettings",
    "ReconciliationSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]

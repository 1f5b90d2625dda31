"""Configuration package."""

from money_conversations.config.settings import (
    AppSettings,
    RemoteConfigSettings,
    ReportSettings,
    Settings,
    StoreSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "RemoteConfigSettings",
    "ReportSettings",
    "Settings",
    "StoreSettings",
    "get_settings",
    "validate_all_settings",
]

"""Configuration package."""

from ledger_recalc.config.settings import (
    AppSettings,
    NotionSettings,
    Settings,
    WebhookSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "NotionSettings",
    "Settings",
    "WebhookSettings",
    "get_settings",
    "validate_all_settings",
]

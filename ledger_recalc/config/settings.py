"""
Configuration Management for Ledger Recalc

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from decimal import Decimal
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class NotionSettings(BaseSettings):
    """Notion record store configuration.

    The legacy variable names (NOTION_KEY, NOTION_DATABASE_TRANSAC, ...)
    are accepted alongside the prefixed ones.
    """

    model_config = SettingsConfigDict(
        env_prefix="NOTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_key: str = Field(
        ...,
        validation_alias=AliasChoices("NOTION_API_KEY", "NOTION_KEY"),
        description="Notion integration token",
    )
    api_version: str = Field(
        default="2022-06-28",
        description="Value sent in the Notion-Version header",
    )
    base_url: str = Field(
        default="https://api.notion.com/v1",
        description="Notion REST API base URL",
    )
    timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Read timeout for a single Notion call",
    )

    # Database ids for each collection
    transactions_database_id: str = Field(
        ...,
        validation_alias=AliasChoices(
            "NOTION_TRANSACTIONS_DATABASE_ID", "NOTION_DATABASE_TRANSAC"
        ),
    )
    accounts_database_id: str = Field(
        ...,
        validation_alias=AliasChoices(
            "NOTION_ACCOUNTS_DATABASE_ID", "NOTION_DATABASE_ACCOUNTS"
        ),
    )
    daily_balance_database_id: str = Field(
        ...,
        validation_alias=AliasChoices(
            "NOTION_DAILY_BALANCE_DATABASE_ID", "NOTION_DATABASE_DAILY_BALANCE"
        ),
    )
    budgets_database_id: str = Field(
        ...,
        validation_alias=AliasChoices(
            "NOTION_BUDGETS_DATABASE_ID", "NOTION_DATABASE_BUDGETS"
        ),
    )


class WebhookSettings(BaseSettings):
    """Shared-secret configuration for the HTTP trigger."""

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    secret: str = Field(
        default="",
        description="Shared secret the caller must send; empty rejects every call",
    )
    header_name: str = Field(
        default="x-webhook-secret",
        description="Request header carrying the shared secret",
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

    # Logging
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level for structured logs"
    )

    # Calendar
    timezone: str = Field(
        default="UTC",
        description="IANA timezone that defines 'today' for a run"
    )

    # Recalculation behaviour
    default_monthly_budget: Decimal = Field(
        default=Decimal("1000"),
        ge=0,
        description="Budget assigned to a month the first time it is seen"
    )
    page_size: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Rows requested per page from the record store"
    )
    daily_balance_source: str = Field(
        default="automated",
        description="Source tag written on daily balance rows created by a run"
    )

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject timezone names zoneinfo cannot resolve."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def tzinfo(self) -> ZoneInfo:
        """Get the configured timezone as a tzinfo."""
        return ZoneInfo(self.timezone)


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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def notion(self) -> NotionSettings:
        return NotionSettings()

    @property
    def webhook(self) -> WebhookSettings:
        return WebhookSettings()

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


def validate_all_settings() -> dict[str, bool | str]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a
    "<name>_error" entry for each group that failed to load.
    Useful for startup checks.
    """
    results: dict[str, bool | str] = {}

    settings = get_settings()

    for name in ("notion", "webhook", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results

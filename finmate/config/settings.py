"""
Configuration Management for FinMate

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The reconciliation engine itself only needs ReconciliationSettings and
ExchangeRateSettings, both of which have working defaults. Google Sheets
credentials are only required when the real row store is wired up.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets row store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the spreadsheet holding the dashboard tables"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the worksheet for audit events"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class ExchangeRateSettings(BaseSettings):
    """External FX rate lookup configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FX_",
        extra="ignore"
    )

    endpoint_url: str = Field(
        default="https://open.er-api.com/v6/latest/USD",
        description="Endpoint returning {rates: {CODE: number}} relative to the base currency"
    )
    base_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Currency the endpoint quotes rates against"
    )
    fresh_seconds: int = Field(
        default=5 * 60,
        ge=0,
        description="How long a fetched rate is served without refetching"
    )
    evict_seconds: int = Field(
        default=30 * 60,
        ge=0,
        description="How long a stale rate is kept as a fallback before eviction"
    )
    max_attempts: int = Field(
        default=2,
        ge=1,
        le=5,
        description="Total fetch attempts (2 = one retry)"
    )
    retry_backoff_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Exponential backoff multiplier between attempts"
    )
    timeout_seconds: float = Field(
        default=8.0,
        gt=0.0,
        description="HTTP timeout for the rate request"
    )


class ReconciliationSettings(BaseSettings):
    """Table names, row limits and currency for the reconciliation pass."""

    model_config = SettingsConfigDict(
        env_prefix="RECONCILE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    reporting_currency: str = Field(
        default="COP",
        min_length=3,
        max_length=3,
        description="Single currency every aggregate is expressed in"
    )
    default_transaction_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Currency assumed for transactions without a currency column"
    )

    # Table names in the row store
    budget_items_table: str = "budget_items"
    budget_payments_table: str = "budget_payments"
    accounts_table: str = "accounts"
    transactions_table: str = "transactions"
    goals_table: str = "goals"
    goal_contributions_table: str = "goal_contributions"
    expenses_table: str = "expenses"
    category_lookup_tables: str = Field(
        default="budget_categories,categories",
        description="Comma-separated lookup tables tried in order for category names"
    )

    # Row limits
    budget_items_limit: int = Field(default=1000, ge=1)
    payments_limit: int = Field(default=2000, ge=1)
    linked_payments_limit: int = Field(default=5000, ge=1)
    recent_expenses_limit: int = Field(default=10, ge=1)

    @field_validator('reporting_currency', 'default_transaction_currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def category_lookup_tables_list(self) -> list[str]:
        """Get lookup tables as a list."""
        return [t.strip() for t in self.category_lookup_tables.split(",") if t.strip()]


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

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level for the stdlib logger structlog writes through"
    )


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
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def exchange_rate(self) -> ExchangeRateSettings:
        return ExchangeRateSettings()

    @property
    def reconciliation(self) -> ReconciliationSettings:
        return ReconciliationSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

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

    for name in ("google_sheets", "exchange_rate", "reconciliation", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results

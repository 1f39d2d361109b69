"""
Configuration Management for the Finance Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets ledger storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet holding the ledger"
    )
    credentials_path: Optional[str] = Field(
        default=None,
        description="Path to Google service account credentials JSON (local development)"
    )
    credentials_json: Optional[str] = Field(
        default=None,
        description="Service account credentials as a JSON string (containers)"
    )

    # Sheet names within the spreadsheet
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet for ledger rows"
    )
    categories_sheet_name: str = Field(
        default="Categories",
        description="Name of the sheet for the category taxonomy"
    )
    settings_sheet_name: str = Field(
        default="Settings",
        description="Name of the sheet for name/value settings"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator("credentials_path")
    @classmethod
    def validate_credentials_path(cls, v: Optional[str]) -> Optional[str]:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if v and not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v

    @model_validator(mode="after")
    def require_credentials(self) -> "GoogleSheetsSettings":
        if not self.credentials_path and not self.credentials_json:
            raise ValueError(
                "Set GOOGLE_SHEETS_CREDENTIALS_PATH or GOOGLE_SHEETS_CREDENTIALS_JSON"
            )
        return self

    def credentials_info(self) -> Optional[dict[str, Any]]:
        """
        Parse the inline credentials JSON, if configured.

        Environment variables often arrive double-escaped (\\" and \\n),
        so that form is unescaped before parsing.
        """
        if not self.credentials_json:
            return None
        raw = self.credentials_json.strip()
        if raw.startswith('{"') and '\\"' in raw:
            raw = raw.replace('\\"', '"').replace("\\n", "\n")
        return json.loads(raw)


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
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=2048,
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


class TelegramSettings(BaseSettings):
    """Telegram Bot API configuration (used for notifications only)."""

    model_config = SettingsConfigDict(
        env_prefix="TELEGRAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    bot_token: str = Field(
        ...,
        description="Telegram bot token"
    )
    api_base_url: str = Field(
        default="https://api.telegram.org",
        description="Telegram Bot API base URL"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="HTTP timeout for Bot API calls"
    )


class LedgerSettings(BaseSettings):
    """
    Tuning knobs for the classification / reconciliation pipeline.

    Every field has a working default, so the core runs without any
    environment configuration.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    default_account: str = Field(
        default="default",
        min_length=1,
        description="Account used when the source doesn't name one"
    )
    email_account: str = Field(
        default="email_parsed",
        min_length=1,
        description="Account used for e-mails that don't name one"
    )

    # Refund matching
    refund_window_days: int = Field(
        default=90,
        ge=1,
        description="How far back a refund may look for its purchase"
    )
    amount_tolerance: float = Field(
        default=0.01,
        gt=0,
        description="Absolute tolerance when comparing amounts"
    )
    refund_search_limit: int = Field(
        default=100,
        ge=1,
        le=5000,
        description="How many recent rows the fuzzy refund search scans"
    )

    # Reporting
    report_row_limit: int = Field(
        default=1000,
        ge=1,
        description="How many recent rows reports aggregate over"
    )
    top_categories: int = Field(
        default=5,
        ge=1,
        description="Categories shown in report breakdowns"
    )

    # Timeouts and concurrency
    classifier_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="Upper bound for a single classifier call"
    )
    store_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound for a single ledger store call"
    )
    batch_concurrency: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Statement lines processed in parallel"
    )

    notify_setting_name: str = Field(
        default="telegram_user_id",
        description="Settings-sheet entry holding the chat to notify"
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
        description="Root log level"
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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def telegram(self) -> TelegramSettings:
        return TelegramSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

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


def validate_all_settings() -> dict[str, Any]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for the ones that failed.
    Useful for startup checks.
    """
    results: dict[str, Any] = {}

    settings = get_settings()

    for name in ("google_sheets", "gemini", "telegram", "ledger", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results

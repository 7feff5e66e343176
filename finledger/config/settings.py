"""
Configuration Management for finledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.

Only the ledger section is required to run the reconciliation engine.
Google Sheets and Gemini sections are optional: without them the library
runs on in-memory storage and the rule-based advisory fallbacks.
"""

import warnings
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""
    
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
        description="ID of the Google Sheets spreadsheet to use"
    )
    
    # Sheet names within the spreadsheet
    transactions_sheet_name: str = Field(default="Transactions")
    goals_sheet_name: str = Field(default="Goals")
    liabilities_sheet_name: str = Field(default="Liabilities")
    budgets_sheet_name: str = Field(default="Budgets")
    recurring_sheet_name: str = Field(
        default="RecurringTransactions",
        description="Name of the sheet for recurring transaction templates"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )
    
    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before connecting to the spreadsheet."
            )
        return v


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration for the advisory agents."""
    
    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
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


class LedgerSettings(BaseSettings):
    """
    Reconciliation settings.
    
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
    
    # Ledger conventions
    emergency_fund_category: str = Field(
        default="Emergency",
        min_length=1,
        description="Goal category (case-insensitive) that marks the emergency fund"
    )
    
    # Validation thresholds
    max_transaction_amount: Decimal = Field(
        default=Decimal("1000000"),
        gt=0,
        description="Amounts above this are accepted but flagged as a warning"
    )
    future_date_tolerance_days: int = Field(
        default=7,
        ge=0,
        description="How many days in the future a transaction date can be"
    )
    split_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        description="Allowed difference between split parts and the parent amount"
    )
    
    # Advisory thresholds
    categorization_min_confidence: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="AI suggestions below this confidence are replaced by the rule-based one"
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
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()
    
    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()


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
    
    Returns a dict of {setting_name: is_valid}, plus a
    `<setting_name>_error` entry for each section that failed.
    Useful for startup checks.
    """
    results = {}
    
    settings = get_settings()
    
    sections = {
        "google_sheets": lambda: settings.google_sheets,
        "gemini": lambda: settings.gemini,
        "ledger": lambda: settings.ledger,
    }
    
    for name, load in sections.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)
    
    return results

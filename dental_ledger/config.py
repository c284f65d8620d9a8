"""Application configuration using pydantic-settings."""
from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_PACKAGE_DIR = Path(__file__).resolve().parent


class AppSettings(BaseSettings):
    """Configuration values for the billing ledger service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="DENTAL_LEDGER_",
    )

    app_name: str = Field(default="Dental Billing Ledger")
    default_currency: str = Field(default="USD", min_length=3, max_length=3)
    currency_symbol: str = Field(default="$")
    seed_demo_data: bool = Field(
        default=True,
        description="Seed the in-memory engine with illustrative patient accounts.",
    )
    max_entries_returned: int = Field(default=200, ge=1)
    audit_max_entries: int = Field(
        default=2000,
        ge=1,
        description="Number of audit records retained by the in-memory audit log.",
    )
    catalog_path: Path = Field(default=_PACKAGE_DIR / "data" / "cdt_codes.json")
    template_dir: Path = Field(default=_PACKAGE_DIR / "templates")
    search_score_cutoff: float = Field(default=60.0, ge=0, le=100)

    @field_validator("default_currency")
    @classmethod
    def _uppercase_currency(cls, value: str) -> str:
        return value.upper()


_settings: AppSettings | None = None


def get_settings() -> AppSettings:
    """Return a cached instance of the application settings."""

    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


__all__ = ["AppSettings", "get_settings"]

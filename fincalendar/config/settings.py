"""
Configuration Management for FinCalendar

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Ledger document settings (currency, start balance, calendar hours) live in
the document itself; what lives here is how the program runs: where the
document is stored and which reconciliation policy applies.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fincalendar.models.ledger import PaymentPolicy


class StorageSettings(BaseSettings):
    """Where the ledger document and the audit trail are kept."""

    model_config = SettingsConfigDict(
        env_prefix="FINCALENDAR_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    data_dir: Path = Field(
        default=Path.home() / "FinCalendar",
        description="Folder holding the ledger document and its backups"
    )
    data_file: str = Field(
        default="data.json",
        description="Ledger document file name"
    )
    audit_file: str = Field(
        default="audit.jsonl",
        description="Audit trail file name (JSON lines)"
    )

    @field_validator("data_dir")
    @classmethod
    def expand_data_dir(cls, v: Path) -> Path:
        return v.expanduser()

    @property
    def data_path(self) -> Path:
        return self.data_dir / self.data_file

    @property
    def audit_path(self) -> Path:
        return self.data_dir / self.audit_file


class LedgerSettings(BaseSettings):
    """
    Ledger behaviour settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="FINCALENDAR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    balance_epsilon: float = Field(
        default=0.0001,
        gt=0,
        description="A fund within this distance of zero counts as empty"
    )
    payment_policy: PaymentPolicy = Field(
        default=PaymentPolicy.LAST_PAYMENT,
        description="Rule register_payment uses to mark an obligation paid"
    )
    calendar_name: str = Field(
        default="FinCalendar",
        description="Name of the external calendar events are synced to"
    )
    default_currency: str = Field(
        default="MXN",
        min_length=1,
        description="Currency written into freshly created documents"
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

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()

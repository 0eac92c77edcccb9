"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .currency import Currency


class AegisConfig(BaseSettings):
    """Aegis banking core configuration"""

    model_config = SettingsConfigDict(
        env_prefix="AEGIS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage configuration
    database_url: str = "sqlite:///aegis.db"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Booking currency
    currency: str = "EUR"

    # Transfer rules
    external_transfer_fee: Decimal = Decimal("0.50")

    # Loan rules
    max_loan_principal: Decimal = Decimal("1000000.00")
    max_loan_interest_rate: Decimal = Decimal("1.0")
    max_loan_term_months: int = 360

    # Account identifier generation
    iban_country_code: str = "GR"
    iban_bank_code: str = "1234"
    iban_max_attempts: int = 10

    # Feature flags
    enable_audit_logging: bool = True

    @field_validator("external_transfer_fee", "max_loan_principal")
    @classmethod
    def _non_negative(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("iban_max_attempts", "max_loan_term_months")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("currency")
    @classmethod
    def _supported_currency(cls, value: str) -> str:
        code = value.upper()
        if code not in Currency.__members__:
            raise ValueError(f"unsupported currency {value}")
        return code

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level {value}")
        return level


# Global configuration instance
config = AegisConfig()


def get_config() -> AegisConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> AegisConfig:
    """Reload configuration from environment"""
    global config
    config = AegisConfig()
    return config

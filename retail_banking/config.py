"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from datetime import datetime
from decimal import Decimal
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class BankConfig(BaseSettings):
    """Retail banking ledger configuration"""

    model_config = SettingsConfigDict(
        env_prefix="BANK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "bank.db"
    reset_database: bool = False

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Security configuration
    jwt_secret: str = "change-me-in-production"
    jwt_expiry_hours: int = 8
    jwt_algorithm: str = "HS256"
    username_min_length: int = 3
    password_min_length: int = 6
    default_admin_username: str = "admin"
    default_admin_password: str = "admin"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout only

    # Product defaults
    savings_interest_rate: Decimal = Decimal("0.03")
    savings_daily_withdrawal_limit: Decimal = Decimal("1000")
    student_interest_rate: Decimal = Decimal("0.05")
    student_daily_withdrawal_limit: Decimal = Decimal("500")
    student_single_withdrawal_limit: Decimal = Decimal("200")
    credit_limit: Decimal = Decimal("1000")
    credit_interest_rate: Decimal = Decimal("0.2")
    credit_grace_period_days: int = 30

    # Interest configuration
    interest_period_days: int = 30

    # Start the clock in simulated time (ISO 8601), e.g. for demos
    simulation_start: Optional[datetime] = None


# Global configuration instance
config = BankConfig()


def get_config() -> BankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankConfig:
    """Reload configuration from environment"""
    global config
    config = BankConfig()
    return config

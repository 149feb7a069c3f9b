"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

from .schemas import SeedAccount


DEFAULT_SEED_ACCOUNTS = [
    SeedAccount(
        username="testuser",
        email="test@example.com",
        display_name="Test User",
        account_number="1234567890"
    ),
    SeedAccount(
        username="johndoe",
        email="user@bank.com",
        display_name="John Doe",
        account_number="0987654321"
    ),
]


class LedgerConfig(BaseSettings):
    """Ledger core configuration"""

    model_config = SettingsConfigDict(
        env_prefix="BANK_LEDGER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Storage configuration
    storage_backend: str = "memory"  # memory or sqlite
    sqlite_path: str = "bank_ledger.db"

    # Business rules configuration
    currency: str = "USD"
    starting_balance: str = "1000.00"  # Balance of an account never written to
    max_transaction_amount: str = "999999.99"
    password_min_length: int = 8
    credit_transfer_recipient: bool = False  # One-sided transfers unless enabled

    # Directory bootstrap
    seed_accounts: List[SeedAccount] = list(DEFAULT_SEED_ACCOUNTS)

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config

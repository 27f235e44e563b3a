"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class ShopBooksConfig(BaseSettings):
    """Shop Books configuration"""

    model_config = SettingsConfigDict(
        env_prefix="SHOPBOOKS_",
        env_file=".env",
        case_sensitive=False
    )

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "shop_books.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    currency: str = "PKR"
    credit_due_days: int = 45
    overdue_after_days: int = 45
    average_sales_window_days: int = 30
    overdue_list_limit: int = 5


# Global configuration instance
config = ShopBooksConfig()


def get_config() -> ShopBooksConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> ShopBooksConfig:
    """Reload configuration from environment"""
    global config
    config = ShopBooksConfig()
    return config

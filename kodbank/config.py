"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import List


class KodbankConfig(BaseSettings):
    """KodBank ledger service configuration"""
    
    # Database configuration
    database_url: str = "sqlite:///kodbank.db"  # memory:// for the in-memory store
    database_timeout_seconds: float = 5.0  # SQLite busy timeout
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    cors_origins: List[str] = ["*"]
    
    # Security configuration
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    session_lifetime_hours: int = 24
    password_min_length: int = 8
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    
    # Business rules configuration
    opening_balance: str = "100000.00"
    max_transaction_amount: str = "1000000.00"
    history_limit: int = 20
    assistant_history_limit: int = 10
    
    class Config:
        env_prefix = "KODBANK_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = KodbankConfig()


def get_config() -> KodbankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> KodbankConfig:
    """Reload configuration from environment"""
    global config
    config = KodbankConfig()
    return config
